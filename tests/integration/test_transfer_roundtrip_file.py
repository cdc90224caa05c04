"""
Verify end-to-end encrypted file handoffs between two coordinators.

Covers the in-memory loopback pair (wire format round-tripped through JSON)
and a real TCP socket channel on 127.0.0.1. Uses only local sockets; no
external network required.
"""

from __future__ import annotations

import queue
import threading
from pathlib import Path

import pytest

from sealdrop.channel import LoopbackChannel, SocketChannel
from sealdrop.security import IntegrityHasher, compute_file_sha256
from sealdrop.transfer import (
    PendingFile,
    ReceivedFile,
    ReceiveState,
    TransferCoordinator,
    save_received_file,
)

PAYLOAD = b"0123456789"


def test_loopback_handoff_delivers_verified_file() -> None:
    sender_end, receiver_end = LoopbackChannel.pair()
    outbound: list[dict] = []
    receiver_end.subscribe(outbound.append)  # observe the wire next to the receiver

    ready: list[ReceivedFile] = []
    with TransferCoordinator() as sender, TransferCoordinator(on_file_ready=ready.append) as receiver:
        sender.attach(sender_end)
        receiver.attach(receiver_end)

        sender.select_file(PendingFile.from_bytes("a.txt", PAYLOAD, "text/plain"))
        assert sender.request_send() is True

    assert len(outbound) == 1
    assert outbound[0]["fileData"]["size"] == 10
    assert outbound[0]["fileData"]["hash"] == IntegrityHasher.digest(PAYLOAD).hex()
    assert len(ready) == 1
    assert ready[0].name == "a.txt"
    assert ready[0].size == 10
    assert ready[0].data == PAYLOAD


def test_loopback_handoff_with_altered_hash_is_rejected() -> None:
    sender_end, receiver_end = LoopbackChannel.pair()
    captured: list[dict] = []
    receiver_end.subscribe(captured.append)

    sender = TransferCoordinator()
    sender.attach(sender_end)
    sender.select_file(PendingFile.from_bytes("a.txt", PAYLOAD, "text/plain"))
    assert sender.request_send() is True

    message = captured[0]
    message["fileData"]["hash"] = IntegrityHasher.digest(b"different").hex()

    statuses: list[str] = []
    ready: list[ReceivedFile] = []
    receiver = TransferCoordinator(on_status_changed=statuses.append, on_file_ready=ready.append)
    receiver.handle_message(message)

    assert ready == []
    assert receiver.last_receive_outcome.state is ReceiveState.RECEIVE_FAILED
    assert "integrity check failed" in statuses[-1]


def test_loopback_ping_is_ignored() -> None:
    sender_end, receiver_end = LoopbackChannel.pair()
    statuses: list[str] = []
    ready: list[ReceivedFile] = []
    receiver = TransferCoordinator(on_status_changed=statuses.append, on_file_ready=ready.append)
    receiver.attach(receiver_end)

    sender_end.send({"type": "ping"})

    assert statuses == []
    assert ready == []
    assert receiver.receive_state is ReceiveState.WAITING


def test_bidirectional_handoff_over_one_pair() -> None:
    left_end, right_end = LoopbackChannel.pair()
    left_ready: list[ReceivedFile] = []
    right_ready: list[ReceivedFile] = []
    left = TransferCoordinator(on_file_ready=left_ready.append)
    right = TransferCoordinator(on_file_ready=right_ready.append)
    left.attach(left_end)
    right.attach(right_end)

    left.select_file(PendingFile.from_bytes("to-right.bin", b"\x00\x01"))
    right.select_file(PendingFile.from_bytes("to-left.bin", b"\x02\x03"))
    assert left.request_send() and right.request_send()

    assert [item.name for item in right_ready] == ["to-right.bin"]
    assert [item.name for item in left_ready] == ["to-left.bin"]


def _socket_pair() -> tuple[SocketChannel, SocketChannel]:
    bound: "queue.Queue[int]" = queue.Queue()
    accepted: dict[str, SocketChannel] = {}

    def serve() -> None:
        accepted["channel"] = SocketChannel.listen(0, host="127.0.0.1", on_bound=bound.put)

    server = threading.Thread(target=serve, daemon=True)
    server.start()
    port = bound.get(timeout=5)
    client = SocketChannel.connect("127.0.0.1", port)
    server.join(5)
    return client, accepted["channel"]


def test_socket_handoff_roundtrip_file(tmp_path: Path) -> None:
    src = tmp_path / "hello.txt"
    payload = ("Hello, Sealdrop!\n" * 64).encode("utf-8")
    src.write_bytes(payload)

    client, server = _socket_pair()
    arrived = threading.Event()
    ready: list[ReceivedFile] = []

    def on_file_ready(received: ReceivedFile) -> None:
        ready.append(received)
        arrived.set()

    receiver = TransferCoordinator(on_file_ready=on_file_ready)
    sender = TransferCoordinator()
    try:
        receiver.attach(server)
        sender.attach(client)

        # Non-protocol traffic shares the channel without side effects
        client.send({"type": "ping"})
        sender.select_file(PendingFile.from_path(src))
        assert sender.request_send() is True

        assert arrived.wait(5), "expected the receiver to verify the file"
    finally:
        sender.close()
        receiver.close()
        client.close()
        server.close()

    assert len(ready) == 1
    saved = save_received_file(receiver.export_received(), tmp_path / "received")
    assert saved.name == "hello.txt"
    assert compute_file_sha256(saved) == compute_file_sha256(src)
    assert server.wait_closed(2)


def test_socket_channel_reports_closed_peer() -> None:
    client, server = _socket_pair()
    server.subscribe(lambda message: None)

    client.close()

    assert server.wait_closed(2)
    assert server.connected is False
    server.close()


def test_socket_channel_skips_undecodable_frames() -> None:
    client, server = _socket_pair()
    inbox: "queue.Queue[dict]" = queue.Queue()
    server.subscribe(inbox.put)
    try:
        client._sock.sendall(b"{not json\n")
        client.send({"type": "ping"})
        assert inbox.get(timeout=5) == {"type": "ping"}
    finally:
        client.close()
        server.close()
