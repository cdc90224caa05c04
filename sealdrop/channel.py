"""
Peer channels the transfer coordinator can run over.

The coordinator only needs `connected`, `send(message)` and
`subscribe(handler)`. Two implementations ship here: an in-memory pair used
for local handoff and tests, and a newline-delimited JSON channel over TCP.
"""

from __future__ import annotations

import contextlib
import json
import logging
import socket
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from .errors import ChannelError, ProtocolError
from .security import DEFAULT_MAX_PAYLOAD_SIZE, KeyedCipher

logger = logging.getLogger(__name__)

BUFFER_SIZE = 512 * 1024
DEFAULT_TRANSFER_PORT = 45847
# Room for the JSON envelope, name, key and digest around the payload.
FRAME_OVERHEAD = 64 * 1024

MessageHandler = Callable[[Dict[str, Any]], None]


class Channel(Protocol):
    """Minimum contract a peer connection must satisfy."""

    @property
    def connected(self) -> bool: ...

    def send(self, message: Dict[str, Any]) -> None: ...

    def subscribe(self, handler: MessageHandler) -> "Subscription": ...


class Subscription:
    """Handle for one registered inbound handler; closing it deregisters."""

    def __init__(self, registry: "_HandlerRegistry", handler: MessageHandler) -> None:
        self._registry = registry
        self._handler = handler
        self._closed = False

    @property
    def active(self) -> bool:
        return not self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._registry.remove(self._handler)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class _HandlerRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: List[MessageHandler] = []

    def add(self, handler: MessageHandler) -> Subscription:
        with self._lock:
            self._handlers.append(handler)
        return Subscription(self, handler)

    def remove(self, handler: MessageHandler) -> None:
        with self._lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def dispatch(self, message: Dict[str, Any]) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler(message)


def _encode_frame(message: Dict[str, Any]) -> bytes:
    try:
        text = json.dumps(message, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise ChannelError(f"message is not JSON serializable: {exc}") from exc
    return (text + "\n").encode("utf-8")


class LoopbackChannel:
    """
    One end of an in-memory channel pair.

    Messages are serialized to JSON and parsed back on delivery so both ends
    only ever see what would have crossed a real wire. Delivery happens
    synchronously on the sender's thread.
    """

    def __init__(self) -> None:
        self._peer: Optional[LoopbackChannel] = None
        self._handlers = _HandlerRegistry()
        self._connected = threading.Event()

    @classmethod
    def pair(cls) -> Tuple["LoopbackChannel", "LoopbackChannel"]:
        left, right = cls(), cls()
        left._peer, right._peer = right, left
        left._connected.set()
        right._connected.set()
        return left, right

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def send(self, message: Dict[str, Any]) -> None:
        peer = self._peer
        if not self.connected or peer is None:
            raise ChannelError("peer is not connected")
        frame = _encode_frame(message)
        peer._handlers.dispatch(json.loads(frame.decode("utf-8")))

    def subscribe(self, handler: MessageHandler) -> Subscription:
        return self._handlers.add(handler)

    def disconnect(self) -> None:
        self._connected.clear()
        if self._peer is not None:
            self._peer._connected.clear()


def max_frame_size(max_payload_size: int) -> int:
    """Largest wire line that can carry a payload of `max_payload_size` bytes."""

    sealed = max_payload_size + KeyedCipher.overhead
    return 4 * ((sealed + 2) // 3) + FRAME_OVERHEAD


def _readline(sock_file, limit: int) -> bytes:
    line = sock_file.readline(limit + 1)
    if not line:
        raise ConnectionError("connection closed")
    if len(line) > limit:
        raise ProtocolError(f"frame exceeds {limit} bytes")
    return line


class SocketChannel:
    """Newline-delimited JSON messages over a connected TCP socket."""

    def __init__(
        self,
        sock: socket.socket,
        peer_address: Optional[Tuple[str, int]] = None,
        max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE,
    ) -> None:
        self._sock = sock
        self._frame_limit = max_frame_size(max_payload_size)
        self._reader = sock.makefile("rb")
        self._send_lock = threading.Lock()
        self._handlers = _HandlerRegistry()
        self._connected = threading.Event()
        self._connected.set()
        self.peer_address = peer_address
        self._reader_thread: Optional[threading.Thread] = None

    @classmethod
    def connect(
        cls,
        host: str,
        port: int = DEFAULT_TRANSFER_PORT,
        timeout: float = 10.0,
        max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE,
    ) -> "SocketChannel":
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as exc:
            raise ChannelError(f"could not connect to {host}:{port}: {exc}") from exc
        sock.settimeout(None)
        _tune_socket(sock)
        return cls(sock, (host, port), max_payload_size)

    @classmethod
    def listen(
        cls,
        port: int = DEFAULT_TRANSFER_PORT,
        host: str = "",
        on_bound: Optional[Callable[[int], None]] = None,
        max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE,
    ) -> "SocketChannel":
        """Accept a single peer on `port`; `on_bound` receives the bound port."""

        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server.bind((host, port))
            server.listen(1)
            if on_bound:
                on_bound(server.getsockname()[1])
            conn, addr = server.accept()
        except OSError as exc:
            raise ChannelError(f"could not accept a peer on port {port}: {exc}") from exc
        finally:
            server.close()
        _tune_socket(conn)
        return cls(conn, addr, max_payload_size)

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def send(self, message: Dict[str, Any]) -> None:
        if not self.connected:
            raise ChannelError("peer is not connected")
        frame = _encode_frame(message)
        with self._send_lock:
            try:
                self._sock.sendall(frame)
            except OSError as exc:
                self._connected.clear()
                raise ChannelError(f"send failed: {exc}") from exc

    def subscribe(self, handler: MessageHandler) -> Subscription:
        subscription = self._handlers.add(handler)
        # Frames are only read once someone is listening for them.
        if self._reader_thread is None:
            self._reader_thread = threading.Thread(
                target=self._read_loop, name="sealdrop-channel-reader", daemon=True
            )
            self._reader_thread.start()
        return subscription

    def close(self) -> None:
        self._connected.clear()
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)
        try:
            self._reader.close()
        finally:
            self._sock.close()

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        if self._reader_thread is None:
            return True
        self._reader_thread.join(timeout)
        return not self._reader_thread.is_alive()

    def __enter__(self) -> "SocketChannel":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Internal helpers -------------------------------------------------

    def _read_loop(self) -> None:
        try:
            while self._connected.is_set():
                try:
                    line = _readline(self._reader, self._frame_limit)
                except ProtocolError as exc:
                    logger.warning("Closing channel to %s: %s", self.peer_address, exc)
                    break
                except (ConnectionError, OSError, ValueError):
                    break
                try:
                    message = json.loads(line.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError):
                    logger.warning("Dropping undecodable frame from %s", self.peer_address)
                    continue
                self._handlers.dispatch(message)
        finally:
            self._connected.clear()
            logger.debug("Channel reader for %s stopped", self.peer_address)


def _tune_socket(sock: socket.socket) -> None:
    try:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, BUFFER_SIZE)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, BUFFER_SIZE)
    except OSError:
        pass


__all__ = [
    "Channel",
    "Subscription",
    "LoopbackChannel",
    "SocketChannel",
    "MessageHandler",
    "DEFAULT_TRANSFER_PORT",
    "max_frame_size",
]
