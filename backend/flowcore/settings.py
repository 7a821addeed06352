"""Runtime settings: tunable parameters for workflow execution.

All values read from environment variables with sensible defaults.
Server binding lives in flowcore/config.py.
"""

from __future__ import annotations

import os


def _int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


def _str(key: str, default: str) -> str:
    return os.getenv(key, default)


# =====================================================================
# Fallback (simulated) executor
# =====================================================================

# Delay applied to nodes of unrecognized type (seconds)
FALLBACK_DELAY = _float("FALLBACK_DELAY", 0.8)


# =====================================================================
# Remote-call executor
# =====================================================================

HTTP_REQUEST_TIMEOUT = _float("HTTP_REQUEST_TIMEOUT", 30.0)

# Relay prefix used when a node sets useProxy
CORS_PROXY_PREFIX = _str("CORS_PROXY_PREFIX", "https://cors-anywhere.herokuapp.com/")


# =====================================================================
# Isolated-script executor
# =====================================================================

# Wall-clock limit for one logic body (seconds)
SCRIPT_TIMEOUT = _float("SCRIPT_TIMEOUT", 5.0)

# Upper bound on loop iterations across a single evaluation
SCRIPT_MAX_ITERATIONS = _int("SCRIPT_MAX_ITERATIONS", 100_000)


# =====================================================================
# SSE event bus
# =====================================================================

EVENT_BUFFER_MAX = _int("EVENT_BUFFER_MAX", 500)
EVENT_BUFFER_MAX_AGE_SECS = _int("EVENT_BUFFER_MAX_AGE_SECS", 600)
