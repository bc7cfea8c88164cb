from __future__ import annotations

import socket
import struct
import threading

import pytest

from treelink import Endpoint, LinkListener, TcpStream, TreelinkReceiveException

WAIT_S = 5.0


class PeerServer:
    """Loopback stand-in for the remote device, driven from the test thread."""

    def __init__(self) -> None:
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(4)
        self.listener.settimeout(WAIT_S)
        self.endpoint = Endpoint("127.0.0.1", self.listener.getsockname()[1])
        self.conn: socket.socket | None = None

    def accept(self) -> socket.socket:
        self.conn, _ = self.listener.accept()
        self.conn.settimeout(WAIT_S)
        return self.conn

    def send(self, data: bytes) -> None:
        self.conn.sendall(data)

    def recv_exactly(self, size: int) -> bytes:
        chunks = bytearray()
        while len(chunks) < size:
            chunk = self.conn.recv(size - len(chunks))
            if not chunk:
                break
            chunks += chunk
        return bytes(chunks)

    def close_gracefully(self) -> None:
        self.conn.shutdown(socket.SHUT_RDWR)
        self.conn.close()

    def reset(self) -> None:
        # zero linger turns close() into an RST
        self.conn.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
        self.conn.close()

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
        self.listener.close()


class RecordingListener(LinkListener):
    """Keeps every notification so tests can wait on and inspect them."""

    def __init__(self) -> None:
        self.events: list = []
        self.chunks: list[bytes] = []
        self.buffers: list = []
        self.sent: list[bytes] = []
        self.errors: list = []
        self._cond = threading.Condition()

    def _record(self, event) -> None:
        with self._cond:
            self.events.append(event)
            self._cond.notify_all()

    def on_connected(self, link):
        self._record("connected")

    def on_disconnected(self, link):
        self._record("disconnected")

    def on_rx_data(self, link, data, count):
        self.buffers.append(data.obj)
        self.chunks.append(bytes(data))
        self._record(("data", count))

    def on_tx_data(self, link, data):
        self.sent.append(data)

    def on_rx_error(self, link, error):
        self.errors.append(error)
        self._record("error")

    def count(self, event) -> int:
        with self._cond:
            return self.events.count(event)

    def data_counts(self) -> list[int]:
        with self._cond:
            return [e[1] for e in self.events if isinstance(e, tuple)]

    def wait_for(self, predicate, timeout: float = WAIT_S) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: predicate(self), timeout)


@pytest.fixture
def peer():
    server = PeerServer()
    yield server
    server.close()


@pytest.fixture
def recorder():
    return RecordingListener()


@pytest.fixture
def stream(peer, recorder):
    link = TcpStream(peer.endpoint, connect_timeout=WAIT_S, poll_interval=0.05)
    link.subscribe(recorder)
    yield link
    link.disconnect()
    try:
        link.join(WAIT_S)
    except TreelinkReceiveException:
        pass


@pytest.fixture
def connected(stream, peer):
    assert stream.connect()
    peer.accept()
    return stream


@pytest.fixture
def closed_endpoint():
    # grab a free port and give it back so nothing is listening there
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return Endpoint("127.0.0.1", port)
