"""
Shared pytest fixtures for test suite.
Provides sample packets, socket helpers and running servers.
"""

import socket
import time

import numpy as np
import pytest

from battlesync.protocol import Packet, PacketKind
from battlesync.server import SyncServer, SyncServerConfig
from battlesync.session_table import SessionTable, SessionTableConfig


LOCALHOST = "127.0.0.1"
POLL_TIMEOUT = 5.0


# ===== Packet Fixtures =====

@pytest.fixture
def sample_pose():
    """Non-trivial 4x4 head transform."""
    return np.arange(16, dtype=np.float32).reshape(4, 4) / 4.0


@pytest.fixture
def action_packet(sample_pose):
    """ActionEvent carrying an attack, a damage report and a pose."""
    return Packet(
        kind=PacketKind.ACTION_EVENT,
        attack=(3, 4),
        damage=(9, 0),
        done=True,
        head_pose=sample_pose,
    )


@pytest.fixture
def empty_action_packet():
    """ActionEvent with no attack and no damage."""
    return Packet(kind=PacketKind.ACTION_EVENT)


# ===== Network Fixtures =====

@pytest.fixture
def table_config():
    """Session table bound to a free localhost port."""
    return SessionTableConfig(host=LOCALHOST, port=0)


@pytest.fixture
def session_table(table_config):
    """Started session table, closed after the test."""
    table = SessionTable(table_config)
    table.start()
    yield table
    table.close()


@pytest.fixture
def sync_server(table_config):
    """Started sync server, stopped after the test."""
    server = SyncServer(table_config=table_config, config=SyncServerConfig(tick_rate=0))
    server.start()
    yield server
    server.stop()


@pytest.fixture
def poll_until():
    """Call a function until it returns a truthy value or time runs out."""
    def _poll_until(func, timeout: float = POLL_TIMEOUT, interval: float = 0.005):
        deadline = time.monotonic() + timeout
        while True:
            result = func()
            if result:
                return result
            if time.monotonic() > deadline:
                raise AssertionError(f"Condition not met within {timeout}s")
            time.sleep(interval)
    return _poll_until


@pytest.fixture
def connect():
    """Open blocking client sockets to a port, closed after the test."""
    sockets = []

    def _connect(port: int) -> socket.socket:
        sock = socket.create_connection((LOCALHOST, port), timeout=POLL_TIMEOUT)
        sockets.append(sock)
        return sock

    yield _connect

    for sock in sockets:
        sock.close()


def recv_exact(sock: socket.socket, size: int) -> bytes:
    """Read exactly size bytes from a blocking socket."""
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            raise ConnectionError("Socket closed before enough bytes arrived")
        data += chunk
    return data


def nothing_pending(sock: socket.socket, wait: float = 0.1) -> bool:
    """True if no bytes arrive on the socket within wait seconds."""
    sock.settimeout(wait)
    try:
        return sock.recv(1) == b""
    except socket.timeout:
        return True
    finally:
        sock.settimeout(POLL_TIMEOUT)


# ===== Pytest Configuration =====

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that open real sockets"
    )
