"""
userlink.cli — Click-based CLI entry point and command handlers.

Commands:
    probe       Check whether the backend endpoint is reachable
    login       Authenticate through the selected transport
    listen      Stream inbound messages
    config      Show, locate, or initialise configuration
    version     Show version information
"""
