"""The tracker: remembers which peers serve which files."""

from __future__ import annotations

import argparse
import re
import select
import signal
import socket
import threading

from .common import MAX_BUFFER_SIZE, TRACKER_PORT, TorrentError, configure_logging, logger
from .network import accept_connection, close_socket, open_server, receive_data, send_data

_POLL_INTERVAL = 0.2
_LEADING_INT = re.compile(r"[+-]?\d+")


def _parse_int(token: str) -> int:
    match = _LEADING_INT.match(token)
    return int(match.group()) if match else 0


class Tracker:
    """A TCP service answering REGISTER and GETPEERS requests."""

    def __init__(self, port: int = TRACKER_PORT, host: str = "") -> None:
        self.port = port
        self.host = host
        self._server: socket.socket | None = None
        self._running = threading.Event()
        self._file_peers: dict[str, list[str]] = {}
        self._peers_lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._threads_lock = threading.Lock()
        self._acceptor: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._running.is_set()

    def address(self) -> tuple[str, int]:
        """Return the host and port the tracker is listening on."""
        if self._server is None:
            raise RuntimeError("tracker is not running")
        host, port = self._server.getsockname()[:2]
        return host, port

    def start(self) -> None:
        """Bind, listen and start accepting clients in the background."""
        if self.running:
            raise RuntimeError("tracker is already running")
        try:
            self._server = open_server(self.port, 10, self.host)
        except TorrentError as exc:
            logger.error("Failed to start tracker socket: %s", exc)
            raise
        self._running.set()
        logger.info("Tracker started on port %d", self.address()[1])
        self._acceptor = threading.Thread(
            target=self._accept_loop, args=(self._server,), daemon=True
        )
        self._acceptor.start()

    def _accept_loop(self, server: socket.socket) -> None:
        while self.running:
            try:
                ready, _, _ = select.select([server], [], [], _POLL_INTERVAL)
            except (OSError, ValueError):
                break
            if not ready:
                continue
            try:
                client, ip, port = accept_connection(server)
            except TorrentError as exc:
                if self.running:
                    logger.error("Failed to accept connection: %s", exc)
                continue
            logger.info("Accepted connection from %s:%d", ip, port)
            worker = threading.Thread(
                target=self.handle_client, args=(client, ip, port), daemon=True
            )
            with self._threads_lock:
                self._threads = [t for t in self._threads if t.is_alive()]
                self._threads.append(worker)
            worker.start()

    def stop(self) -> None:
        """Stop accepting clients and wait for running requests to finish."""
        if not self.running:
            return
        self._running.clear()
        close_socket(self._server)
        if self._acceptor is not None:
            self._acceptor.join()
            self._acceptor = None
        self._server = None
        with self._threads_lock:
            workers, self._threads = self._threads, []
        for worker in workers:
            worker.join()
        logger.info("Tracker stopped")

    def register_file(self, filename: str, peer_ip: str, peer_port: int) -> bool:
        """Record that a peer serves a file; duplicates are ignored."""
        peer_id = f"{peer_ip}:{peer_port}"
        with self._peers_lock:
            peers = self._file_peers.setdefault(filename, [])
            if peer_id in peers:
                return True
            peers.append(peer_id)
        logger.info("Registered file '%s' with peer %s", filename, peer_id)
        return True

    def get_peers(self, filename: str) -> list[str]:
        """Return the "ip:port" peers serving a file, in registration order."""
        with self._peers_lock:
            return list(self._file_peers.get(filename, ()))

    def handle_client(self, client_sock: socket.socket, client_ip: str, client_port: int) -> None:
        """Read one request from a client, answer it and close the connection."""
        try:
            try:
                data = receive_data(client_sock, MAX_BUFFER_SIZE - 1)
            except TorrentError as exc:
                logger.error("Failed to receive data from client: %s", exc)
                return
            if not data:
                logger.error("Failed to receive data from client: connection closed")
                return
            request = data.split(b"\0", 1)[0].decode("utf-8", errors="replace")
            response = self.handle_request(request, client_ip, client_port)
            try:
                send_data(client_sock, response.encode("utf-8"))
            except TorrentError as exc:
                logger.error("Failed to send response to client: %s", exc)
        finally:
            close_socket(client_sock)

    def handle_request(self, request: str, client_ip: str, client_port: int) -> str:
        """Return the response line for one request."""
        tokens = request.split()
        command = tokens[0] if tokens else ""

        if command == "REGISTER":
            filename = tokens[1] if len(tokens) > 1 else ""
            peer_port = _parse_int(tokens[2]) if len(tokens) > 2 else 0
            if not filename or peer_port <= 0:
                return "ERROR Invalid REGISTER command format\n"
            if self.register_file(filename, client_ip, peer_port):
                return "OK\n"
            return "ERROR Failed to register file\n"

        if command == "GETPEERS":
            filename = tokens[1] if len(tokens) > 1 else ""
            if not filename:
                return "ERROR Invalid GETPEERS command format\n"
            return "".join(f"{peer};" for peer in self.get_peers(filename)) + "\n"

        return "ERROR Unknown command\n"


def main(argv: list[str] | None = None) -> int:
    """Run a tracker until interrupted."""
    parser = argparse.ArgumentParser(prog="minitorrent-tracker", description="Run the tracker.")
    parser.add_argument("--port", type=int, default=TRACKER_PORT, help="port to listen on")
    parser.add_argument("--host", default="", help="address to bind to (default: all)")
    args = parser.parse_args(argv)

    configure_logging()
    tracker = Tracker(args.port, args.host)
    try:
        tracker.start()
    except TorrentError:
        logger.critical("Failed to start tracker")
        return 1

    stop_event = threading.Event()

    def _on_signal(signum, _frame):
        logger.info("Received signal %d, shutting down...", signum)
        stop_event.set()

    previous = {sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
    logger.info("Tracker running on port %d", tracker.address()[1])
    logger.info("Press Ctrl+C to stop")
    try:
        while not stop_event.wait(1.0):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        tracker.stop()
    return 0