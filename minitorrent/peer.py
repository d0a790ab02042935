"""The peer: seeds files to other peers and downloads files from them."""

from __future__ import annotations

import argparse
import os
import re
import select
import signal
import socket
import threading
from pathlib import Path
from typing import Callable, Sequence

from .common import (
    CHUNK_SIZE,
    MAX_BUFFER_SIZE,
    TRACKER_IP,
    TRACKER_PORT,
    ErrorCode,
    ProgressBar,
    TorrentError,
    configure_logging,
    logger,
)
from .fileutils import (
    calculate_checksum,
    file_exists,
    get_file_size,
    get_filename,
    read_chunks,
    receive_header,
    send_header,
    verify_file_integrity,
    write_chunk,
)
from .network import (
    accept_connection,
    close_socket,
    connect_to_host,
    open_server,
    receive_data,
    send_data,
)

_POLL_INTERVAL = 0.2
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

PeerSelector = Callable[[Sequence[str]], "int | str"]


def _parse_int(text: str) -> int:
    """Parse a leading integer the way the interactive prompts accept it."""
    match = _LEADING_INT.match(text)
    if match is None:
        raise ValueError(f"not a number: {text!r}")
    return int(match.group(1))


def parse_peer_list(response: str) -> list[str]:
    """Split a tracker GETPEERS response into its "ip:port" entries."""
    if response == "\n":
        return []
    line = response.split("\n", 1)[0]
    return [peer for peer in line.split(";") if peer]


def parse_peer_address(address: str) -> tuple[str, int]:
    """Split an "ip:port" peer address into its IP and port."""
    ip, sep, port_text = address.partition(":")
    if not sep:
        raise TorrentError(ErrorCode.ERROR_INVALID_INPUT, f"Invalid peer address: {address}")
    try:
        port = _parse_int(port_text)
    except ValueError:
        raise TorrentError(
            ErrorCode.ERROR_INVALID_INPUT, f"Invalid peer port: {port_text}"
        ) from None
    return ip, port


def strip_quotes(path: str) -> str:
    """Remove one leading and one trailing double quote, if present."""
    if path.startswith('"'):
        path = path[1:]
    if path.endswith('"'):
        path = path[:-1]
    return path


class Peer:
    """Seeds one file at a time and downloads files found through a tracker."""

    def __init__(self, tracker_ip: str = TRACKER_IP, tracker_port: int = TRACKER_PORT) -> None:
        self.tracker_ip = tracker_ip
        self.tracker_port = tracker_port
        self.current_seeding_file: str | None = None
        self.seeding_port = 0
        self._server: socket.socket | None = None
        self._seeding = threading.Event()
        self._seeder: threading.Thread | None = None

    def __enter__(self) -> Peer:
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop_seeding()

    def is_seeding(self) -> bool:
        """Return True while a file is being served."""
        return self._seeding.is_set()

    # Tracker communication

    def _ask_tracker(self, command: str) -> str:
        try:
            sock = connect_to_host(self.tracker_ip, self.tracker_port)
        except TorrentError as exc:
            logger.error("Failed to connect to tracker: %s", exc)
            raise TorrentError(ErrorCode.ERROR_TRACKER_CONNECT, str(exc)) from exc
        try:
            send_data(sock, command.encode("utf-8"))
            data = receive_data(sock, MAX_BUFFER_SIZE - 1)
        except TorrentError as exc:
            logger.error("Failed to talk to tracker: %s", exc)
            raise TorrentError(ErrorCode.ERROR_TRACKER_CONNECT, str(exc)) from exc
        finally:
            close_socket(sock)
        if not data:
            logger.error("Failed to receive response: connection closed")
            raise TorrentError(ErrorCode.ERROR_TRACKER_CONNECT, "no response from tracker")
        return data.split(b"\0", 1)[0].decode("utf-8", errors="replace")

    def register_with_tracker(self, filename: str, port: int) -> None:
        """Tell the tracker that this peer serves ``filename`` on ``port``."""
        response = self._ask_tracker(f"REGISTER {filename} {port}\n")
        if response != "OK\n":
            logger.error("Tracker returned error: %s", response)
            raise TorrentError(
                ErrorCode.ERROR_TRACKER_CONNECT, f"Tracker returned error: {response.strip()}"
            )
        logger.info("Registered file '%s' with tracker", filename)

    def get_peers_from_tracker(self, filename: str) -> list[str]:
        """Return the "ip:port" addresses of peers serving ``filename``."""
        return parse_peer_list(self._ask_tracker(f"GETPEERS {filename}\n"))

    # Seeding

    def seed_file(self, filepath: str | Path, port: int) -> int:
        """Serve a file on ``port`` and register it; return the port in use."""
        if not file_exists(filepath):
            logger.error("File does not exist: %s", filepath)
            raise TorrentError(ErrorCode.ERROR_FILE_OPEN, f"File does not exist: {filepath}")
        path = os.fspath(filepath)
        filename = get_filename(path)

        self.stop_seeding()
        try:
            server = open_server(port, 5)
        except TorrentError as exc:
            logger.error("Failed to open seeder socket: %s", exc)
            raise
        actual_port = server.getsockname()[1]
        try:
            self.register_with_tracker(filename, actual_port)
        except TorrentError:
            logger.error("Failed to register with tracker")
            close_socket(server)
            raise

        self._server = server
        self.current_seeding_file = path
        self.seeding_port = actual_port
        self._seeding.set()
        self._seeder = threading.Thread(
            target=self._accept_loop, args=(server, path), daemon=True
        )
        self._seeder.start()
        return actual_port

    def _accept_loop(self, server: socket.socket, filepath: str) -> None:
        logger.info("Seeder started on port %d", self.seeding_port)
        while self.is_seeding():
            try:
                ready, _, _ = select.select([server], [], [], _POLL_INTERVAL)
            except (OSError, ValueError):
                break
            if not ready:
                continue
            try:
                client, ip, port = accept_connection(server)
            except TorrentError as exc:
                if self.is_seeding():
                    logger.error("Failed to accept connection: %s", exc)
                continue
            logger.info("Accepted download request from %s:%d", ip, port)
            threading.Thread(
                target=self._serve_client, args=(client, filepath), daemon=True
            ).start()

    def _serve_client(self, client_sock: socket.socket, filepath: str) -> None:
        try:
            self.handle_download_request(client_sock, filepath)
        except TorrentError as exc:
            logger.error("Upload failed: %s", exc)

    def handle_download_request(self, client_sock: socket.socket, filepath: str | Path) -> None:
        """Send a file with its header to a connected downloader, then close."""
        try:
            file_size = get_file_size(filepath)
            send_header(client_sock, file_size, calculate_checksum(filepath))
            try:
                handle = open(filepath, "rb")
            except OSError as exc:
                logger.error("Failed to open file for sending: %s", filepath)
                raise TorrentError(ErrorCode.ERROR_FILE_OPEN, str(filepath)) from exc
            total_sent = 0
            with handle:
                for block in read_chunks(handle, CHUNK_SIZE):
                    send_data(client_sock, block)
                    total_sent += len(block)
                    if total_sent % (CHUNK_SIZE * 100) == 0:
                        percent = int(total_sent / file_size * 100) if file_size else 100
                        logger.info("Upload progress: %d%%", percent)
            logger.info("File sent successfully: %s", filepath)
        finally:
            close_socket(client_sock)

    def stop_seeding(self) -> None:
        """Stop serving the current file, if any."""
        if not self.is_seeding():
            return
        self._seeding.clear()
        close_socket(self._server)
        self._server = None
        if self._seeder is not None:
            self._seeder.join()
            self._seeder = None
        logger.info("Stopped seeding")

    # Downloading

    def download_file(
        self,
        filename: str,
        dest_path: str | Path,
        select: PeerSelector | None = None,
    ) -> int:
        """Download ``filename`` from a chosen peer into ``dest_path``.

        ``select`` receives the list of peers and returns the index to use;
        without it the user is asked. Returns the number of bytes received.
        """
        peers = self.get_peers_from_tracker(filename)
        if not peers:
            logger.error("No peers found for file: %s", filename)
            raise TorrentError(ErrorCode.ERROR_PEER_CONNECT, f"No peers found for file: {filename}")
        logger.info("Found %d peers for file: %s", len(peers), filename)

        print("Available peers:")
        for number, peer in enumerate(peers):
            print(f"  [{number}] {peer}")

        choice = select(peers) if select is not None else input("\nSelect peer index: ")
        if isinstance(choice, int):
            index = choice
        else:
            try:
                index = _parse_int(str(choice))
            except ValueError:
                raise TorrentError(
                    ErrorCode.ERROR_INVALID_INPUT, "Invalid input. Please enter a number."
                ) from None
        if not 0 <= index < len(peers):
            raise TorrentError(ErrorCode.ERROR_INVALID_INPUT, "Invalid index selected.")

        peer_ip, peer_port = parse_peer_address(peers[index])
        logger.info("Connecting to peer %s:%d", peer_ip, peer_port)
        try:
            sock = connect_to_host(peer_ip, peer_port)
        except TorrentError as exc:
            raise TorrentError(ErrorCode.ERROR_PEER_CONNECT, str(exc)) from exc

        try:
            file_size, expected_checksum = receive_header(sock)
            progress = ProgressBar(file_size)
            try:
                handle = open(dest_path, "wb")
            except OSError as exc:
                logger.error("Failed to open destination file: %s", dest_path)
                raise TorrentError(ErrorCode.ERROR_FILE_OPEN, str(dest_path)) from exc
            total_received = 0
            with handle:
                while total_received < file_size:
                    block = receive_data(sock, min(CHUNK_SIZE, file_size - total_received))
                    if not block:
                        raise TorrentError(
                            ErrorCode.ERROR_SOCKET_CONNECT, "Failed to receive file data"
                        )
                    write_chunk(handle, block)
                    total_received += len(block)
                    progress.update(total_received)
            progress.finish()
        finally:
            close_socket(sock)

        if not verify_file_integrity(dest_path, expected_checksum):
            raise TorrentError(ErrorCode.ERROR_CHECKSUM_MISMATCH, str(dest_path))
        logger.info("Download complete: %s", dest_path)
        return total_received


_MENU = (
    "\n"
    "╔══════════════════════════════════╗\n"
    "║       MINI-TORRENT PEER          ║\n"
    "╠══════════════════════════════════╣\n"
    "║ 1. Seed a file                   ║\n"
    "║ 2. Download a file               ║\n"
    "║ 3. Exit                          ║\n"
    "╚══════════════════════════════════╝"
)


def _seed_interactively(peer: Peer) -> None:
    file_path = strip_quotes(input("Enter path to file to seed: "))
    try:
        port = _parse_int(input("Enter port to serve on (>=1024): "))
    except ValueError:
        print("❌ Invalid port number.")
        return
    if port < 1024:
        print("❌ Port must be >= 1024.")
        return
    try:
        peer.seed_file(file_path, port)
    except TorrentError as exc:
        logger.error("%s", exc)
        print("❌ Failed to seed file.")
        return
    print("✅ File is now being seeded. Press Ctrl+C to stop.")
    print("Press Enter to return to menu (seeding will continue in background)...")
    input()


def _download_interactively(peer: Peer) -> None:
    filename = input("Enter filename to download: ")
    dest_path = strip_quotes(input("Enter destination path: "))
    try:
        peer.download_file(filename, dest_path)
    except TorrentError as exc:
        logger.error("%s", exc)
        print("❌ Failed to download file.")
        return
    print("✅ File downloaded successfully.")


def main(argv: list[str] | None = None) -> int:
    """Run the interactive peer menu."""
    parser = argparse.ArgumentParser(prog="minitorrent-peer", description="Seed and download files.")
    parser.add_argument("--tracker-ip", default=TRACKER_IP, help="tracker IPv4 address")
    parser.add_argument("--tracker-port", type=int, default=TRACKER_PORT, help="tracker port")
    args = parser.parse_args(argv)

    configure_logging()
    peer = Peer(args.tracker_ip, args.tracker_port)

    def _on_sigterm(signum, _frame):
        logger.info("Received signal %d, shutting down...", signum)
        raise KeyboardInterrupt

    previous = signal.signal(signal.SIGTERM, _on_sigterm)
    try:
        while True:
            print(_MENU)
            try:
                choice = input("Select option: ")
            except EOFError:
                break
            try:
                option = _parse_int(choice)
            except ValueError:
                print("❌ Invalid input. Please enter a number.")
                continue
            if option == 1:
                _seed_interactively(peer)
            elif option == 2:
                _download_interactively(peer)
            elif option == 3:
                print("Goodbye!")
                break
            else:
                print("❌ Invalid option. Please try again.")
    except EOFError:
        pass
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    finally:
        signal.signal(signal.SIGTERM, previous)
        peer.stop_seeding()
    return 0