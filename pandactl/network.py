"""TCP and UDP connection to the robot's control server.

Commands travel over TCP as a fixed header followed by a payload.
Robot states and robot commands travel over UDP as datagrams of a fixed size.
"""

from __future__ import annotations

import dataclasses
import select
import socket
import struct
import threading
import time
from collections.abc import Callable
from typing import ClassVar, Optional

__all__ = [
    "NetworkException",
    "ProtocolException",
    "MessageHeader",
    "Network",
]

_HEADER_FORMAT = struct.Struct("<III")
_MAX_DATAGRAM = 65535


class NetworkException(Exception):
    """Raised when the connection fails, times out or is closed."""


class ProtocolException(Exception):
    """Raised when received data does not follow the protocol."""


@dataclasses.dataclass(frozen=True)
class MessageHeader:
    """Header preceding every TCP message: command, command ID and total size in bytes."""

    command: int
    command_id: int
    size: int

    SIZE: ClassVar[int] = _HEADER_FORMAT.size

    def pack(self) -> bytes:
        """Return the wire representation of the header."""
        return _HEADER_FORMAT.pack(self.command, self.command_id, self.size)

    @classmethod
    def unpack(cls, data: bytes) -> MessageHeader:
        """Read a header from the start of the given bytes."""
        if len(data) < cls.SIZE:
            raise ProtocolException("Incorrect TCP message size.")
        command, command_id, size = _HEADER_FORMAT.unpack_from(data)
        return cls(command, command_id, size)


def _readable(sock: socket.socket, timeout: float) -> bool:
    if sock.fileno() < 0:
        raise OSError("socket is closed")
    readable, _, _ = select.select([sock], [], [], timeout)
    return bool(readable)


class Network:
    """A TCP command connection and a UDP state connection to one server."""

    def __init__(
        self,
        address: str,
        port: int,
        tcp_timeout: float = 60.0,
        udp_timeout: float = 1.0,
        tcp_keepalive: tuple[bool, int, int, int] = (True, 1, 3, 1),
    ) -> None:
        self._tcp_lock = threading.Lock()
        self._udp_lock = threading.Lock()
        self._command_id = 0
        self._pending: Optional[bytearray] = None
        self._pending_size = 0
        self._pending_command_id = 0
        self._received: dict[int, bytes] = {}
        self._udp_server_address: Optional[tuple] = None

        try:
            self._tcp = socket.create_connection((address, port), timeout=tcp_timeout)
        except socket.timeout as error:
            raise NetworkException("Connection timeout") from error
        except OSError as error:
            raise NetworkException(f"Connection error: {error}") from error

        try:
            enabled, idle, count, interval = tcp_keepalive
            if enabled:
                self._tcp.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
                for name, value in (
                    ("TCP_KEEPIDLE", idle),
                    ("TCP_KEEPCNT", count),
                    ("TCP_KEEPINTVL", interval),
                ):
                    option = getattr(socket, name, None)
                    if option is None:
                        continue
                    try:
                        self._tcp.setsockopt(socket.IPPROTO_TCP, option, value)
                    except OSError:
                        pass
            self._udp = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                self._udp.bind(("0.0.0.0", 0))
                self._udp.settimeout(udp_timeout)
                self._udp_port: int = self._udp.getsockname()[1]
            except OSError:
                self._udp.close()
                raise
        except OSError as error:
            self._tcp.close()
            raise NetworkException(f"Connection error: {error}") from error

    @property
    def udp_port(self) -> int:
        """Local port on which robot states are received."""
        return self._udp_port

    # UDP

    def udp_receive(self, size: int) -> Optional[bytes]:
        """Return a datagram of the given size if one is waiting, else None."""
        with self._udp_lock:
            try:
                if not _readable(self._udp, 0.0):
                    return None
                peeked, _ = self._udp.recvfrom(_MAX_DATAGRAM, socket.MSG_PEEK)
            except OSError as error:
                raise NetworkException(f"UDP receive: {error}") from error
            if len(peeked) < size:
                return None
            return self._udp_receive_unlocked(size)

    def udp_blocking_receive(self, size: int) -> bytes:
        """Wait for a datagram of exactly the given size and return it."""
        with self._udp_lock:
            return self._udp_receive_unlocked(size)

    def _udp_receive_unlocked(self, size: int) -> bytes:
        try:
            data, address = self._udp.recvfrom(size)
        except OSError as error:
            raise NetworkException(f"UDP receive: {error}") from error
        self._udp_server_address = address
        if len(data) != size:
            raise ProtocolException("incorrect object size")
        return data

    def udp_send(self, data: bytes) -> None:
        """Send a datagram to the server that last sent one to us."""
        with self._udp_lock:
            if self._udp_server_address is None:
                raise NetworkException("UDP send: no server address known")
            try:
                sent = self._udp.sendto(bytes(data), self._udp_server_address)
            except OSError as error:
                raise NetworkException(f"UDP send: {error}") from error
            if sent != len(data):
                raise NetworkException("could not send UDP data")

    # TCP

    def tcp_throw_if_connection_closed(self) -> None:
        """Raise NetworkException if the server has closed the TCP connection."""
        if not self._tcp_lock.acquire(blocking=False):
            return
        try:
            if _readable(self._tcp, 0.0):
                if not self._tcp.recv(1, socket.MSG_PEEK):
                    raise NetworkException("server closed connection")
        except OSError as error:
            raise NetworkException(str(error)) from error
        finally:
            self._tcp_lock.release()

    def tcp_send_request(self, command: int, payload: bytes = b"") -> int:
        """Send a request and return the command ID it was given."""
        payload = bytes(payload)
        with self._tcp_lock:
            command_id = self._command_id
            self._command_id = (self._command_id + 1) & 0xFFFFFFFF
            header = MessageHeader(command, command_id, MessageHeader.SIZE + len(payload))
            try:
                self._tcp.sendall(header.pack() + payload)
            except OSError as error:
                raise NetworkException(f"TCP send bytes: {error}") from error
        return command_id

    def tcp_receive_response(
        self, command_id: int, handler: Callable[[bytes], None]
    ) -> bool:
        """Pass the payload of the response to command_id to handler if it has arrived.

        Does not wait. Returns whether the response was handled.
        """
        if not self._tcp_lock.acquire(blocking=False):
            return False
        try:
            self._tcp_read_from_buffer(0.0)
            message = self._received.pop(command_id, None)
        finally:
            self._tcp_lock.release()
        if message is None:
            return False
        handler(self._payload(message))
        return True

    def tcp_blocking_receive_response(self, command_id: int) -> bytes:
        """Wait for the response to command_id and return its payload."""
        while True:
            with self._tcp_lock:
                self._tcp_read_from_buffer(0.01)
                message = self._received.pop(command_id, None)
            if message is not None:
                return self._payload(message)
            time.sleep(0)

    @staticmethod
    def _payload(message: bytes) -> bytes:
        header = MessageHeader.unpack(message)
        if header.size < MessageHeader.SIZE:
            raise ProtocolException("Incorrect TCP message size.")
        return message[MessageHeader.SIZE:]

    def _tcp_read_from_buffer(self, timeout: float) -> None:
        try:
            if not _readable(self._tcp, timeout):
                return
            if self._pending is None:
                peeked = self._tcp.recv(MessageHeader.SIZE, socket.MSG_PEEK)
                if not peeked:
                    raise NetworkException("server closed connection")
                if len(peeked) < MessageHeader.SIZE:
                    return
                header = MessageHeader.unpack(self._tcp.recv(MessageHeader.SIZE))
                if header.size < MessageHeader.SIZE:
                    raise ProtocolException("Incorrect TCP message size.")
                self._pending = bytearray(header.pack())
                self._pending_size = header.size
                self._pending_command_id = header.command_id
            remaining = self._pending_size - len(self._pending)
            if remaining > 0 and _readable(self._tcp, 0.0):
                chunk = self._tcp.recv(remaining)
                if not chunk:
                    raise NetworkException("server closed connection")
                self._pending += chunk
            if len(self._pending) == self._pending_size:
                self._received.setdefault(self._pending_command_id, bytes(self._pending))
                self._pending = None
                self._pending_size = 0
                self._pending_command_id = 0
        except OSError as error:
            raise NetworkException(f"TCP receive: {error}") from error

    # Lifetime

    def close(self) -> None:
        """Shut down and close both connections."""
        try:
            self._tcp.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._tcp.close()
        self._udp.close()

    def __enter__(self) -> Network:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()