"""
Brief: Global pytest configuration enforcing a per-test 10s timeout and shared helpers.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import socket
import sys
import threading
import time

import pytest

# Ensure 'src' is on sys.path so 'lantern' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


# Install handler if supported on this platform
if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


class UDPStub:
    """
    Brief: Loopback UDP server whose reply is produced by a callable.

    Inputs:
      - responder: callable(bytes) -> bytes | None; None means stay silent

    Outputs:
      - Running stub with .addr (host, port) and .received (list of datagrams)
    """

    def __init__(self, responder):
        self.responder = responder
        self.received = []
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.addr = self.sock.getsockname()
        self._stop = False
        self.thread = threading.Thread(target=self._loop, daemon=True)

    def start(self):
        self.thread.start()
        time.sleep(0.02)
        return self

    def _loop(self):
        while not self._stop:
            try:
                self.sock.settimeout(0.2)
                data, peer = self.sock.recvfrom(4096)
            except Exception:
                continue
            self.received.append(data)
            reply = self.responder(data)
            if reply is None:
                continue
            try:
                self.sock.sendto(reply, peer)
            except Exception:
                pass

    def close(self):
        self._stop = True
        try:
            self.sock.close()
        except Exception:
            pass


@pytest.fixture
def udp_stub_factory():
    """
    Brief: Build UDPStub instances that are closed after the test.

    Inputs:
      - None

    Outputs:
      - callable(responder) -> started UDPStub
    """
    stubs = []

    def _make(responder):
        stub = UDPStub(responder).start()
        stubs.append(stub)
        return stub

    try:
        yield _make
    finally:
        for stub in stubs:
            stub.close()
