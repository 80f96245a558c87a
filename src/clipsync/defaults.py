#!/usr/bin/env python3
"""Default values for the resolved configuration.

These constants control polling cadence, content limits, heartbeat and
reconnection behavior when neither the config file nor the command line
overrides them.
"""

# Interval between clipboard polls in milliseconds.
POLL_INTERVAL_MS: int = 200

# Maximum size of clipboard content in bytes (10 MB).
# Prevents memory exhaustion from extremely large clipboard data.
MAX_CONTENT_SIZE_BYTES: int = 10 * 1024 * 1024

# Number of updates retained by the relay store before FIFO eviction.
MAX_HISTORY_ITEMS: int = 100

# Interval between liveness probes in milliseconds.
HEARTBEAT_INTERVAL_MS: int = 30000

# Consecutive failed probes that force a reconnect.
HEARTBEAT_MAX_FAILURES: int = 3

# Initial delay between connection attempts in milliseconds.
RECONNECT_DELAY_MS: int = 5000

# Maximum delay between connection attempts in milliseconds.
MAX_RECONNECT_DELAY_MS: int = 60000

# Multiplier for reconnect backoff (delay = initial * backoff^attempt).
# 1.0 keeps a fixed delay.
RECONNECT_BACKOFF: float = 1.0

# Default TCP port for the duplex stream protocol.
STREAM_PORT: int = 9877

# Default bind address and port for the relay HTTP server.
RELAY_HOST: str = "0.0.0.0"
RELAY_PORT: int = 8080

# Timeout for a single relay HTTP request in seconds.
HTTP_TIMEOUT: float = 10.0
