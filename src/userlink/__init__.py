"""
userlink — connection management for user-service WebSocket backends.

userlink sits between a client UI and a message-oriented backend. It probes
the backend once, hands back either a live WebSocket transport (with
automatic reconnection) or a simulated stand-in for offline work, and
exposes both through one transport interface.

Package layout (src/userlink/):
  core/       — constants, configuration, exceptions, logging setup
  transport/  — transport contract, live and simulated transports, factory
  cli/        — Click CLI entry point
"""

__version__ = "0.3.0"
__all__ = ["__version__"]
