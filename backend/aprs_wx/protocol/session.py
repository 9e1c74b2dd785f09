"""TCP line session to an APRS-IS server.

Owns one socket to the feed: connects (IPv6 first, then IPv4), checks the
server banner against the accepted/rejected version lists, logs in with an
optional filter and then hands out one newline-terminated line at a time.

Lines are read a byte at a time behind a select() readiness wait so an idle
feed never blocks longer than the idle timeout.  Carriage returns are
dropped; the terminating line feed is kept, so an empty string always means
"no data this cycle".

References:
    http://www.aprs-is.net/connecting.aspx
"""

import logging
import select
import socket
import threading
from enum import Enum
from typing import Optional

from .constants import (
    ACCEPTED_SERVER_PREFIXES,
    APRS_IS_HOST,
    APRS_IS_PORT,
    BANNER_TIMEOUT,
    COMMENT_MARKER,
    CONNECT_TIMEOUT,
    CR,
    CRLF,
    LF,
    LOGIN_TIMEOUT,
    REJECT_RETRY_DELAY,
    REJECTED_SERVER_PREFIXES,
)
from .cursor import ParseCursor

logger = logging.getLogger(__name__)

ADDRESS_FAMILIES = (socket.AF_INET6, socket.AF_INET, socket.AF_UNSPEC)


class AprsConnectionError(ConnectionError):
    """No address of the feed host could be connected."""


class ProtocolRejection(ConnectionError):
    """Server banner never matched an accepted version."""


class ReadFailure(ConnectionError):
    """I/O error or EOF on an established session."""


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_BANNER = "awaiting_banner"
    REJECTED = "rejected"
    ACCEPTED = "accepted"
    LOGGED_IN = "logged_in"
    READING = "reading"


def banner_accepted(banner: str) -> bool:
    """True if the banner names an acceptable server version."""
    if any(banner.startswith(p) for p in REJECTED_SERVER_PREFIXES):
        return False
    return any(banner.startswith(p) for p in ACCEPTED_SERVER_PREFIXES)


def login_line(callsign: str, passcode: str, filter_expr: str = "") -> str:
    """Format the APRS-IS login command, CRLF terminated."""
    line = f"user {callsign} pass {passcode}"
    if filter_expr:
        line += f" filter {filter_expr}"
    return line + CRLF


class LineSession:
    """One APRS-IS connection yielding raw packet lines."""

    def __init__(
        self,
        host: str = APRS_IS_HOST,
        port: int = APRS_IS_PORT,
        connect_timeout: float = CONNECT_TIMEOUT,
        retry_delay: float = REJECT_RETRY_DELAY,
    ):
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.retry_delay = retry_delay
        self.state = SessionState.DISCONNECTED
        self.peer_name: str = ""
        self.banner: str = ""
        self.good_server = False
        self.line: str = ""
        self._sock: Optional[socket.socket] = None
        self._pending = bytearray()

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    # ---- connection lifecycle ----

    def connect(
        self,
        max_attempts: Optional[int] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        """Connect and keep reconnecting until the server banner is accepted.

        Waits retry_delay between rejected attempts; setting stop_event
        abandons the loop.

        Raises:
            AprsConnectionError: if no address family connects.
            ProtocolRejection: if max_attempts banners were all rejected, or
                stop_event was set before a banner was accepted.
        """
        stop_event = stop_event or threading.Event()
        attempts = 0
        self.good_server = False
        while not self.good_server:
            if max_attempts is not None and attempts >= max_attempts:
                raise ProtocolRejection(
                    f"{self.host}:{self.port} rejected after {attempts} attempts"
                )
            if attempts and stop_event.wait(self.retry_delay):
                raise ProtocolRejection(
                    f"{self.host}:{self.port} connect stopped after {attempts} attempts"
                )
            attempts += 1

            self._open_socket()
            self.state = SessionState.AWAITING_BANNER
            self.banner = self.read_line(BANNER_TIMEOUT).strip()
            self.good_server = banner_accepted(self.banner)
            if not self.good_server:
                self.state = SessionState.REJECTED
                logger.warning("Reject %s version %r", self.peer_name, self.banner)
                self.close()

        self.state = SessionState.ACCEPTED
        logger.info("Accept %s version %s", self.peer_name, self.banner)

    def _open_socket(self) -> None:
        """Open a TCP socket to the first reachable address."""
        self.state = SessionState.CONNECTING
        last_error: Optional[Exception] = None
        for family in ADDRESS_FAMILIES:
            try:
                infos = socket.getaddrinfo(
                    self.host, self.port, family, socket.SOCK_STREAM,
                )
            except socket.gaierror as exc:
                last_error = exc
                continue
            for af, socktype, proto, _canon, addr in infos:
                sock = socket.socket(af, socktype, proto)
                try:
                    sock.settimeout(self.connect_timeout)
                    sock.connect(addr)
                except OSError as exc:
                    last_error = exc
                    sock.close()
                    continue
                sock.settimeout(None)
                self._sock = sock
                self._pending.clear()
                self.peer_name = f"{addr[0]}:{addr[1]}"
                logger.debug("Connected to %s", self.peer_name)
                return

        self.state = SessionState.DISCONNECTED
        raise AprsConnectionError(
            f"Connection to {self.host}:{self.port} failed: {last_error}"
        )

    def login(self, callsign: str, passcode: str, filter_expr: str = "") -> str:
        """Send the login command and return the server's response line."""
        command = login_line(callsign, passcode, filter_expr)
        self.send(command)
        logger.info("Login: %s", command.strip())
        response = self.read_line(LOGIN_TIMEOUT)
        logger.info("Login response: %s", response.strip())
        self.state = SessionState.LOGGED_IN
        return response

    def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError as exc:
                logger.debug("Close failed: %s", exc)
            self._sock = None
            logger.debug("Closed session to %s", self.peer_name)
        self._pending.clear()
        self.state = SessionState.DISCONNECTED

    # ---- I/O ----

    def send(self, text: str) -> None:
        """Write a complete line to the server."""
        if self._sock is None:
            raise ReadFailure("Session not open")
        try:
            self._sock.sendall(text.encode())
        except OSError as exc:
            self.close()
            raise ReadFailure(f"Write to {self.peer_name} failed: {exc}") from exc

    def read_line(self, idle_timeout: float) -> str:
        """Read one line, waiting at most idle_timeout for each byte.

        Returns the line including its trailing line feed, or "" when the
        wait timed out.  Bytes of an incomplete line are kept for the next
        call.

        Raises:
            ReadFailure: on a socket error or EOF; the session is closed.
        """
        if self._sock is None:
            raise ReadFailure("Session not open")
        if self.state == SessionState.LOGGED_IN:
            self.state = SessionState.READING

        while True:
            try:
                readable, _, _ = select.select([self._sock], [], [], idle_timeout)
            except (OSError, ValueError) as exc:
                logger.warning("select() on %s failed: %s", self.peer_name, exc)
                self.line = ""
                return ""
            if not readable:
                self.line = ""
                return ""

            try:
                data = self._sock.recv(1)
            except OSError as exc:
                self.close()
                raise ReadFailure(f"Read from {self.peer_name} failed: {exc}") from exc
            if not data:
                self.close()
                raise ReadFailure(f"{self.peer_name} closed the connection")

            if data == CR:
                continue
            self._pending += data
            if data == LF:
                self.line = self._pending.decode(errors="replace")
                self._pending.clear()
                return self.line

    # ---- decoder interface ----

    def cursor(self) -> ParseCursor:
        """Fresh parse cursor over the last line read."""
        return ParseCursor(self.line)

    def is_comment(self) -> bool:
        """True if the last line is a server comment or keep-alive."""
        return self.line.startswith(COMMENT_MARKER)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
