"""
Unit tests for Connection, over a local socket pair.
"""

import socket
import threading
import time

import pytest

from assetserver.core.connection import DRAIN_TIMEOUT, Connection, ConnectionState


@pytest.fixture
def pair():
    server_sock, client_sock = socket.socketpair()
    yield server_sock, client_sock
    server_sock.close()
    client_sock.close()


def make_connection(sock: socket.socket, **kwargs) -> Connection:
    return Connection(socket=sock, address=("127.0.0.1", 50000), **kwargs)


class TestReadRequest:

    def test_pipelined_requests_are_split(self, pair):
        server_sock, client_sock = pair
        conn = make_connection(server_sock)
        client_sock.sendall(
            b"GET /a.css HTTP/1.1\r\nHost: t\r\n\r\n"
            b"GET /b.js HTTP/1.1\r\nHost: t\r\n\r\n"
        )

        first = conn.read_request()
        second = conn.read_request()

        assert first.startswith(b"GET /a.css ")
        assert second.startswith(b"GET /b.js ")
        assert conn.requests_handled == 2

    def test_peer_close_returns_none(self, pair):
        server_sock, client_sock = pair
        conn = make_connection(server_sock)
        client_sock.close()

        assert conn.read_request() is None


class TestClose:

    def test_close_is_idempotent(self, pair):
        server_sock, client_sock = pair
        conn = make_connection(server_sock)
        client_sock.close()

        conn.close()
        conn.close()

        assert conn.state == ConnectionState.CLOSED

    def test_trickling_peer_cannot_hold_close(self, pair):
        server_sock, client_sock = pair
        conn = make_connection(server_sock)
        stop = threading.Event()

        def trickle():
            while not stop.is_set():
                try:
                    client_sock.send(b"x")
                except OSError:
                    return
                time.sleep(0.1)

        sender = threading.Thread(target=trickle, daemon=True)
        sender.start()
        try:
            started = time.monotonic()
            conn.close()
            elapsed = time.monotonic() - started
        finally:
            stop.set()
            sender.join(timeout=5)

        assert conn.closed
        assert elapsed < DRAIN_TIMEOUT + 1.0

    def test_close_drains_pending_bytes(self, pair):
        server_sock, client_sock = pair
        conn = make_connection(server_sock)
        client_sock.sendall(b"leftover request bytes")
        client_sock.shutdown(socket.SHUT_WR)

        started = time.monotonic()
        conn.close()

        assert conn.closed
        assert time.monotonic() - started < DRAIN_TIMEOUT
        # Our side sent FIN, so the peer sees EOF rather than a reset
        assert client_sock.recv(1024) == b""

    def test_abort_skips_drain(self, pair):
        server_sock, client_sock = pair
        conn = make_connection(server_sock)

        conn.abort()

        assert conn.closed
        assert server_sock.fileno() == -1
