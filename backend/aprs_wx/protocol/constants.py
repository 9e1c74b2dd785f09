"""Protocol constants for the APRS-IS feed."""

# Feed endpoint (filtered port, accepts r/ filters)
APRS_IS_HOST = "cwop.aprs2.net"
APRS_IS_PORT = 14580

# Timeouts (seconds)
CONNECT_TIMEOUT = 15.0
BANNER_TIMEOUT = 15.0
LOGIN_TIMEOUT = 15.0
IDLE_TIMEOUT = 1.0

# Pause between reconnects after a rejected banner (seconds)
REJECT_RETRY_DELAY = 2.0

# Line framing
LF = b"\n"
CR = b"\r"
CRLF = "\r\n"

# Server comment / keep-alive lines start with this marker.
COMMENT_MARKER = "#"
APRSC_KEEPALIVE = "# aprsc"

# Banners we are willing to talk to.
ACCEPTED_SERVER_PREFIXES = (
    "# aprsc",
    "# javAPRSSrvr",
)

# Server versions known to mangle filtered weather traffic.
REJECTED_SERVER_PREFIXES = (
    "# javAPRSSrvr 4.3.0b22",
    "# javAPRSSrvr 4.3.0b17",
    "# javAPRSSrvr 4.2.0b09",
)

# Callsign placeholder shipped in example configs
UNCONFIGURED_CALLSIGN = "N0CALL"
