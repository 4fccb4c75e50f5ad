"""userlink constants: filesystem layout, endpoint defaults, and timings."""

from __future__ import annotations

from enum import IntEnum

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    NETWORK_ERROR = 4


# ---------------------------------------------------------------------------
# Filesystem layout
# ---------------------------------------------------------------------------

USERLINK_DIR_NAME = ".userlink"
CONFIG_FILENAME = "config.toml"

# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

DEFAULT_URL = "ws://localhost:8081/ws/users"

# ---------------------------------------------------------------------------
# Timings (seconds)
# ---------------------------------------------------------------------------

PROBE_TIMEOUT_SECONDS = 2.0
OPEN_TIMEOUT_SECONDS = 10.0
RECONNECT_BASE_DELAY_SECONDS = 1.0
RECONNECT_MAX_DELAY_SECONDS = 10.0
RECONNECT_MAX_ATTEMPTS = 5
SIMULATED_CONNECT_LATENCY_SECONDS = 0.5
SIMULATED_AUTH_LATENCY_SECONDS = 1.0

# ---------------------------------------------------------------------------
# Simulated backend
# ---------------------------------------------------------------------------

SIMULATED_USERNAME = "admin"
SIMULATED_PASSWORD = "password"
SIMULATED_ROLE = "admin"
