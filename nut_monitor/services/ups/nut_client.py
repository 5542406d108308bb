"""
Async NUT Client

Minimal client for the Network UPS Tools text protocol (upsd, port 3493):
one TCP connection, USERNAME/PASSWORD login, LIST VAR, LOGOUT.

Every network wait is bounded by the client timeout.
"""

import asyncio
import shlex

from nut_monitor.common.exceptions import AuthError, NutConnectionError, ProtocolError
from nut_monitor.common.logging_setup import get_service_logger

logger = get_service_logger("ups.nut")

# ERR codes that mean the credentials were refused
AUTH_ERRORS = frozenset({
    "ACCESS-DENIED",
    "INVALID-USERNAME",
    "INVALID-PASSWORD",
    "USERNAME-REQUIRED",
    "PASSWORD-REQUIRED",
})

# Upper bound on lines in a single LIST VAR reply
MAX_LIST_LINES = 4096


def parse_var_line(line: str, device_name: str) -> tuple[str, str]:
    """
    Parse 'VAR <ups> <name> "<value>"' into (name, value).

    Quoted values may contain backslash-escaped quotes and backslashes.
    """
    try:
        parts = shlex.split(line)
    except ValueError as e:
        raise ProtocolError(f"Malformed VAR line: {e}", device_name=device_name, response=line)

    if len(parts) != 4 or parts[0] != "VAR" or parts[1] != device_name:
        raise ProtocolError(
            f"Unexpected line in variable list: {line}",
            device_name=device_name,
            response=line,
        )
    return parts[2], parts[3]


class NutClient:
    """
    Async NUT protocol client.

    A client is meant for a single session: connect, optionally
    authenticate, fetch, close.
    """

    def __init__(
        self,
        host: str,
        port: int = 3493,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.timeout = timeout

        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> None:
        """Open the TCP connection to upsd"""
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise NutConnectionError(
                f"Timed out connecting to {self.host}:{self.port}",
                host=self.host,
                port=self.port,
            )
        except OSError as e:
            raise NutConnectionError(
                f"Cannot connect to {self.host}:{self.port}: {e}",
                host=self.host,
                port=self.port,
            )
        logger.debug(f"Connected to NUT server at {self.host}:{self.port}")

    async def authenticate(self, username: str, password: str) -> None:
        """Log in with USERNAME/PASSWORD"""
        for command, value in (("USERNAME", username), ("PASSWORD", password)):
            reply = await self._command(f"{command} {self._quote(value)}")
            if reply.startswith("ERR "):
                code = reply[4:].strip()
                if code in AUTH_ERRORS:
                    raise AuthError(f"Authentication failed: {code}", username=username)
                raise ProtocolError(f"{command} rejected: {code}", response=reply)
            if not reply.startswith("OK"):
                raise ProtocolError(f"Unexpected reply to {command}: {reply}", response=reply)

    async def fetch_variables(self, device_name: str) -> dict[str, str]:
        """
        Fetch every variable of a UPS (LIST VAR).

        Returns:
            Mapping of variable name to raw string value
        """
        reply = await self._command(f"LIST VAR {device_name}")
        if reply.startswith("ERR "):
            code = reply[4:].strip()
            if code in AUTH_ERRORS:
                raise AuthError(f"Access to {device_name} refused: {code}")
            raise ProtocolError(
                f"LIST VAR {device_name} failed: {code}",
                device_name=device_name,
                response=reply,
            )
        if reply != f"BEGIN LIST VAR {device_name}":
            raise ProtocolError(
                f"Unexpected reply to LIST VAR: {reply}",
                device_name=device_name,
                response=reply,
            )

        variables: dict[str, str] = {}
        end_marker = f"END LIST VAR {device_name}"
        for _ in range(MAX_LIST_LINES):
            line = await self._read_line()
            if line == end_marker:
                logger.debug(f"Fetched {len(variables)} variables for {device_name}")
                return variables
            name, value = parse_var_line(line, device_name)
            variables[name] = value

        raise ProtocolError(
            f"Variable list for {device_name} exceeded {MAX_LIST_LINES} lines",
            device_name=device_name,
        )

    async def close(self) -> None:
        """Say LOGOUT and close the socket. Never raises."""
        writer = self._writer
        if writer is None:
            return
        self._writer = None
        self._reader = None

        try:
            if not writer.is_closing():
                writer.write(b"LOGOUT\n")
                await asyncio.wait_for(writer.drain(), timeout=self.timeout)
        except (OSError, asyncio.TimeoutError):
            pass

        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=self.timeout)
        except (OSError, asyncio.TimeoutError):
            pass
        logger.debug(f"Disconnected from {self.host}:{self.port}")

    async def _command(self, command: str) -> str:
        if self._writer is None:
            raise NutConnectionError(
                f"Not connected to {self.host}:{self.port}",
                host=self.host,
                port=self.port,
            )
        try:
            self._writer.write(f"{command}\n".encode("utf-8"))
            await asyncio.wait_for(self._writer.drain(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise NutConnectionError(
                f"Timed out writing to {self.host}:{self.port}",
                host=self.host,
                port=self.port,
            )
        except OSError as e:
            raise NutConnectionError(
                f"Write to {self.host}:{self.port} failed: {e}",
                host=self.host,
                port=self.port,
            )
        return await self._read_line()

    async def _read_line(self) -> str:
        try:
            raw = await asyncio.wait_for(self._reader.readline(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise NutConnectionError(
                f"Timed out waiting for {self.host}:{self.port}",
                host=self.host,
                port=self.port,
            )
        except OSError as e:
            raise NutConnectionError(
                f"Read from {self.host}:{self.port} failed: {e}",
                host=self.host,
                port=self.port,
            )
        except ValueError as e:
            # StreamReader line limit exceeded
            raise ProtocolError(f"Oversized line from {self.host}:{self.port}: {e}")
        if not raw:
            raise NutConnectionError(
                f"Connection closed by {self.host}:{self.port}",
                host=self.host,
                port=self.port,
            )
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    @staticmethod
    def _quote(value: str) -> str:
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
