"""Shared fixtures."""

import base64
import hashlib
import socket
import threading
import time

import pytest
from websockets.sync.server import serve

from stream_watchdog.telemetry import BaseSink, Telemetry


class RecordingSink(BaseSink):
    """Sink that keeps every event in memory."""

    name = "recording"

    def __init__(self):
        self.events = []
        self.flushes = []
        self.closed = False

    def send(self, event):
        self.events.append(event)
        return True, "recorded"

    def flush(self, timeout):
        self.flushes.append(timeout)

    def close(self):
        self.closed = True

    def levels(self):
        return [e.level for e in self.events]

    def messages(self):
        return [e.message for e in self.events]


class StreamServer:
    """Local websocket server that records subscriptions and sends a few frames."""

    def __init__(self, frames=0, frame_interval=0.05):
        self.frames = frames
        self.frame_interval = frame_interval
        self.subscriptions = []
        self.connected_at = []

    def handler(self, websocket):
        self.connected_at.append(time.monotonic())
        self.subscriptions.append(websocket.recv())
        for i in range(self.frames):
            time.sleep(self.frame_interval)
            websocket.send(f'{{"type":"channel","body":{{"n":{i}}}}}')
        # Stay silent until the client hangs up
        for _ in websocket:
            pass


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def telemetry(recording_sink):
    return Telemetry([recording_sink])


@pytest.fixture
def stream_server():
    """Factory fixture: call with the number of frames to send after subscribe."""
    servers = []

    def start(frames=0, frame_interval=0.05):
        stream = StreamServer(frames, frame_interval)
        server = serve(stream.handler, "127.0.0.1", 0)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        servers.append(server)
        port = server.socket.getsockname()[1]
        stream.url = f"ws://127.0.0.1:{port}"
        return stream

    yield start

    for server in servers:
        server.shutdown()


WS_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"


@pytest.fixture
def silent_peer():
    """Raw TCP peer that completes the websocket handshake and then never reads or replies."""
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    port = listener.getsockname()[1]
    accepted = []
    done = threading.Event()

    def serve_once():
        conn, _ = listener.accept()
        accepted.append(conn)
        request = b""
        while b"\r\n\r\n" not in request:
            chunk = conn.recv(4096)
            if not chunk:
                return
            request += chunk

        key = ""
        for line in request.decode("latin-1").split("\r\n"):
            name, _, value = line.partition(":")
            if name.strip().lower() == "sec-websocket-key":
                key = value.strip()
        accept = base64.b64encode(hashlib.sha1((key + WS_GUID).encode()).digest()).decode()
        conn.sendall(
            (
                "HTTP/1.1 101 Switching Protocols\r\n"
                "Upgrade: websocket\r\n"
                "Connection: Upgrade\r\n"
                f"Sec-WebSocket-Accept: {accept}\r\n"
                "\r\n"
            ).encode()
        )
        done.wait(30)

    thread = threading.Thread(target=serve_once, daemon=True)
    thread.start()

    yield f"ws://127.0.0.1:{port}/streaming"

    done.set()
    for conn in accepted:
        conn.close()
    listener.close()
