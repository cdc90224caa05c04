"""
Sender and receiver state machines for a single encrypted file handoff.
"""

from __future__ import annotations

import logging
import mimetypes
import os
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Deque, Optional

from .channel import Channel, Subscription
from .errors import IntegrityError
from .language import get_message
from .protocol import DEFAULT_MIME_TYPE, OtherMessage, TransferEnvelope, parse_message
from .security import DEFAULT_MAX_PAYLOAD_SIZE, IntegrityHasher, KeyedCipher

logger = logging.getLogger(__name__)


class SendState(str, Enum):
    IDLE = "idle"
    FILE_PENDING = "file_pending"
    PREPARING = "preparing"
    SENT = "sent"
    SEND_FAILED = "send_failed"


class ReceiveState(str, Enum):
    WAITING = "waiting"
    RECEIVING = "receiving"
    VERIFYING = "verifying"
    RECEIVED = "received"
    RECEIVE_FAILED = "receive_failed"


@dataclass(frozen=True)
class PendingFile:
    """A file the user picked; its bytes are only read when a send starts."""

    name: str
    mime_type: str = DEFAULT_MIME_TYPE
    path: Optional[Path] = None
    content: Optional[bytes] = field(default=None, repr=False)

    @classmethod
    def from_path(cls, path: Path, mime_type: Optional[str] = None) -> "PendingFile":
        if mime_type is None:
            guessed, _ = mimetypes.guess_type(path.name)
            mime_type = guessed or DEFAULT_MIME_TYPE
        return cls(name=path.name, mime_type=mime_type, path=path)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, mime_type: Optional[str] = None) -> "PendingFile":
        if mime_type is None:
            guessed, _ = mimetypes.guess_type(name)
            mime_type = guessed or DEFAULT_MIME_TYPE
        return cls(name=name, mime_type=mime_type, content=bytes(data))

    def read(self) -> bytes:
        if self.content is not None:
            return self.content
        if self.path is None:
            raise ValueError("pending file has neither a path nor content")
        return self.path.read_bytes()


@dataclass(frozen=True)
class ReceivedFile:
    """A verified incoming file, held until the consumer exports it."""

    name: str
    mime_type: str
    size: int
    data: bytes = field(repr=False)


@dataclass(frozen=True)
class ReceiveOutcome:
    state: ReceiveState
    name: Optional[str] = None
    error: Optional[str] = None


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class TransferCoordinator:
    """
    Drives one outbound handoff at a time and any number of inbound ones.

    The coordinator owns the selected file, the last verified incoming file,
    and the status text. It touches nothing but the attached channel and the
    two callbacks: `on_status_changed(text)` and `on_file_ready(received)`.

    Sends are single-flight: a request made while another is preparing is
    rejected. Inbound messages are queued and processed strictly in arrival
    order, whichever thread delivers them.

    The per-transfer key travels inside the same message as the ciphertext.
    Anyone able to read the channel can therefore decrypt the payload; the
    encryption only protects the file once it has left this channel.
    """

    def __init__(
        self,
        *,
        language: str = "en",
        max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE,
        on_status_changed: Optional[Callable[[str], None]] = None,
        on_file_ready: Optional[Callable[[ReceivedFile], None]] = None,
        cipher: Optional[KeyedCipher] = None,
        hasher: Optional[IntegrityHasher] = None,
    ) -> None:
        self.language = language
        self.on_status_changed = on_status_changed
        self.on_file_ready = on_file_ready
        self._cipher = cipher or KeyedCipher(max_payload_size)
        self._hasher = hasher or IntegrityHasher()

        self._state_lock = threading.RLock()
        self._send_lock = threading.Lock()
        self._drain_lock = threading.Lock()
        self._inbox: Deque[Any] = deque()

        self._channel: Optional[Channel] = None
        self._subscription: Optional[Subscription] = None
        self._pending: Optional[PendingFile] = None
        self._received: Optional[ReceivedFile] = None
        self._send_state = SendState.IDLE
        self._receive_state = ReceiveState.WAITING
        self._status = ""
        self.last_send_error: Optional[str] = None
        self.last_receive_outcome: Optional[ReceiveOutcome] = None

    # Channel lifecycle ------------------------------------------------

    def attach(self, channel: Channel) -> Subscription:
        """Listen on `channel`, releasing any previously attached one."""

        with self._state_lock:
            self._release_subscription()
            self._channel = channel
            self._subscription = channel.subscribe(self.handle_message)
            logger.debug("Attached to channel %r", channel)
            return self._subscription

    def detach(self) -> None:
        with self._state_lock:
            self._release_subscription()
            self._channel = None

    def close(self) -> None:
        self.detach()

    def __enter__(self) -> "TransferCoordinator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def connected(self) -> bool:
        channel = self._channel
        return channel is not None and bool(channel.connected)

    # Observable state -------------------------------------------------

    @property
    def status(self) -> str:
        with self._state_lock:
            return self._status

    @property
    def send_state(self) -> SendState:
        with self._state_lock:
            return self._send_state

    @property
    def receive_state(self) -> ReceiveState:
        with self._state_lock:
            return self._receive_state

    @property
    def pending_file(self) -> Optional[PendingFile]:
        with self._state_lock:
            return self._pending

    @property
    def received_file(self) -> Optional[ReceivedFile]:
        with self._state_lock:
            return self._received

    # User actions -----------------------------------------------------

    def select_file(self, pending: PendingFile) -> None:
        """Hold `pending` for the next send, replacing any earlier selection."""

        with self._state_lock:
            self._pending = pending
            # A send already in flight keeps its own snapshot of the old file.
            if self._send_state is not SendState.PREPARING:
                self._send_state = SendState.FILE_PENDING
        logger.debug("Selected %s (%s)", pending.name, pending.mime_type)
        self._set_status("status_file_selected")

    def request_send(self) -> bool:
        """
        Encrypt the pending file and hand it to the channel.

        Returns True when an envelope was sent. Without a pending file or a
        connected channel the call does nothing and returns False. A call
        made while another send is preparing is rejected the same way.
        """

        if not self._send_lock.acquire(blocking=False):
            logger.warning("Rejected send request: another send is in progress")
            self._set_status("status_send_busy")
            return False
        try:
            with self._state_lock:
                channel = self._channel
                pending = self._pending
                if pending is None or channel is None or not channel.connected:
                    logger.debug("Ignoring send request without a pending file or peer")
                    return False
                self._send_state = SendState.PREPARING
            self._set_status("status_preparing")

            try:
                envelope = self._seal(pending)
                channel.send(envelope.to_message())
            except Exception as exc:  # noqa: BLE001
                reason = _describe(exc)
                with self._state_lock:
                    self._send_state = SendState.SEND_FAILED
                    self.last_send_error = reason
                logger.warning("Sending %s failed: %s", pending.name, reason)
                self._set_status("status_send_failed", error=reason)
                return False

            with self._state_lock:
                if self._pending is pending:
                    self._pending = None
                    self._send_state = SendState.SENT
                else:
                    # Selected while this send was in flight.
                    self._send_state = SendState.FILE_PENDING
                self.last_send_error = None
            logger.debug("Sent %r", envelope)
            self._set_status("status_sent")
            return True
        finally:
            self._send_lock.release()

    def export_received(self) -> Optional[ReceivedFile]:
        """Hand the verified file to the caller and forget it."""

        with self._state_lock:
            received, self._received = self._received, None
        return received

    # Inbound ----------------------------------------------------------

    def handle_message(self, message: Any) -> None:
        """Channel handler: queue `message` and process the queue in order."""

        self._inbox.append(message)
        while self._inbox:
            # Whoever holds the drain lock processes everything queued; other
            # threads only enqueue. Re-check after release so nothing strands.
            if not self._drain_lock.acquire(blocking=False):
                return
            try:
                while True:
                    try:
                        queued = self._inbox.popleft()
                    except IndexError:
                        break
                    self._process_inbound(queued)
            finally:
                self._drain_lock.release()

    # Internal helpers -------------------------------------------------

    def _seal(self, pending: PendingFile) -> TransferEnvelope:
        key = self._cipher.generate_key()
        plaintext = pending.read()
        ciphertext = self._cipher.encrypt(plaintext, key)
        # Digest the original bytes, never the ciphertext.
        digest = self._hasher.digest(plaintext)
        return TransferEnvelope(
            name=pending.name,
            mime_type=pending.mime_type,
            size=len(plaintext),
            key=key,
            digest=digest,
            ciphertext=ciphertext,
        )

    def _process_inbound(self, message: Any) -> None:
        name: Optional[str] = None
        try:
            parsed = parse_message(message)
            if isinstance(parsed, OtherMessage):
                logger.debug("Ignoring %s message", parsed.kind or "untyped")
                return
            envelope = parsed.envelope
            name = envelope.name
            self._enter_receive_state(ReceiveState.RECEIVING, "status_receiving")
            plaintext = self._cipher.decrypt(envelope.ciphertext, envelope.key)
            self._enter_receive_state(ReceiveState.VERIFYING, "status_verifying")
            self._verify(envelope, plaintext)
        except Exception as exc:  # noqa: BLE001
            reason = _describe(exc)
            with self._state_lock:
                self._receive_state = ReceiveState.RECEIVE_FAILED
                self.last_receive_outcome = ReceiveOutcome(
                    ReceiveState.RECEIVE_FAILED, name=name, error=reason
                )
            logger.warning("Receiving %s failed: %s", name or "file", reason)
            self._set_status("status_receive_failed", error=reason)
            self._return_to_waiting()
            return

        received = ReceivedFile(
            name=envelope.name,
            mime_type=envelope.mime_type,
            size=envelope.size,
            data=plaintext,
        )
        with self._state_lock:
            self._received = received
            self._receive_state = ReceiveState.RECEIVED
            self.last_receive_outcome = ReceiveOutcome(ReceiveState.RECEIVED, name=received.name)
        logger.debug("Received and verified %s (%d bytes)", received.name, received.size)
        self._set_status("status_received")
        try:
            if self.on_file_ready:
                self.on_file_ready(received)
        except Exception:  # noqa: BLE001
            # Later queued messages must still be processed.
            logger.exception("File ready handler failed for %s", received.name)
        finally:
            self._return_to_waiting()

    def _verify(self, envelope: TransferEnvelope, plaintext: bytes) -> None:
        actual = self._hasher.digest(plaintext)
        if not self._hasher.digests_match(envelope.digest, actual):
            raise IntegrityError("File integrity check failed")
        if len(plaintext) != envelope.size:
            raise IntegrityError("File size does not match the declared size")

    def _enter_receive_state(self, state: ReceiveState, status_key: str) -> None:
        with self._state_lock:
            self._receive_state = state
        self._set_status(status_key)

    def _return_to_waiting(self) -> None:
        with self._state_lock:
            self._receive_state = ReceiveState.WAITING

    def _release_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def _set_status(self, key: str, **kwargs: object) -> None:
        text = get_message(key, self.language, **kwargs)
        with self._state_lock:
            self._status = text
        if not self.on_status_changed:
            return
        try:
            self.on_status_changed(text)
        except Exception:  # noqa: BLE001
            logger.exception("Status handler failed for %r", text)


def save_received_file(received: ReceivedFile, directory: Path) -> Path:
    """Write `received` into `directory` without overwriting existing files."""

    directory.mkdir(parents=True, exist_ok=True)
    filename = os.path.basename(received.name.replace("\\", "/")) or "received.bin"
    if filename in {".", ".."}:
        filename = "received.bin"
    target = _prepare_destination(directory, filename)
    target.write_bytes(received.data)
    return target


def _prepare_destination(directory: Path, filename: str) -> Path:
    target = directory / filename
    if not target.exists():
        return target
    stem = target.stem
    suffix = target.suffix
    counter = 1
    while True:
        candidate = directory / f"{stem}({counter}){suffix}"
        if not candidate.exists():
            return candidate
        counter += 1


__all__ = [
    "SendState",
    "ReceiveState",
    "PendingFile",
    "ReceivedFile",
    "ReceiveOutcome",
    "TransferCoordinator",
    "save_received_file",
]
