# minitorrent

A small file sharing system made of two parts:

- a **tracker**, which remembers which peers offer which files, and
- a **peer**, which can seed a file to others or download a file from another peer.

Files are sent over plain TCP. Each transfer starts with the file size and a
checksum, and the downloaded copy is checked against that checksum once it
arrives. The checksum is a simple byte sum over the file's complete 1024-byte
blocks, shown as eight hex digits; it catches gross corruption, not tampering.

## Installation

```
pip install .
```

No third-party libraries are needed.

## Running the tracker

```
minitorrent-tracker [--port PORT] [--host HOST]
```

By default the tracker listens on port 8000 on all addresses. It runs until it
receives Ctrl+C (SIGINT) or SIGTERM.

## Running a peer

```
minitorrent-peer [--tracker-ip IP] [--tracker-port PORT]
```

The tracker address defaults to `127.0.0.1:8000`. The peer shows a menu:

1. **Seed a file**: enter the path of a file and a port (1024 or higher).
   The peer registers the file with the tracker under its file name and serves it
   in the background. A peer seeds one file at a time; seeding a new file stops
   the previous one.
2. **Download a file**: enter the name of a file and a destination path.
   The peer asks the tracker who has the file, lists those peers, and lets you pick
   one by index. A progress bar follows the download, and the checksum is verified
   at the end.
3. **Exit**: stops seeding and quits.

Paths may be given in double quotes; the quotes are removed. Ctrl+C or SIGTERM
also stops seeding and quits.

## Tracker protocol

Peers talk to the tracker with one line per connection:

| Request                       | Response                              |
|-------------------------------|---------------------------------------|
| `REGISTER <filename> <port>`  | `OK`                                  |
| `GETPEERS <filename>`         | `ip:port;ip:port;` or an empty line   |
| anything else                 | `ERROR Unknown command`               |

A malformed `REGISTER` or `GETPEERS` gets an `ERROR ...` line. The tracker records
a peer under the address it connected from and the port it gave; registering the
same peer twice for a file has no further effect.

## Transfer format

A seeder answers each connection with an 8-byte little-endian file size, an
8-byte little-endian checksum length (under 256), the checksum text, and then the
file's bytes, and closes the connection.

## Using it from Python

```python
from minitorrent.tracker import Tracker
from minitorrent.peer import Peer

tracker = Tracker(port=8000, host="127.0.0.1")
tracker.start()

seeder = Peer(tracker_ip="127.0.0.1", tracker_port=8000)
seeder.seed_file("notes.txt", 9000)

leecher = Peer(tracker_ip="127.0.0.1", tracker_port=8000)
leecher.download_file("notes.txt", "copy.txt", select=lambda peers: 0)

seeder.stop_seeding()
tracker.stop()
```

`download_file` returns the number of bytes received; `seed_file` returns the port
being served (pass 0 to let the system choose one). Failures raise
`minitorrent.common.TorrentError`, whose `code` is a `minitorrent.common.ErrorCode`.
Lower-level helpers live in `minitorrent.network` (sockets and size fields) and
`minitorrent.fileutils` (`send_file`, `receive_file`, `verify_file_integrity` and
related functions).

## What it does not do

- The tracker keeps its file-to-peer table in memory only; it is lost when the
  tracker stops, and peers are never removed from it.
- A download comes whole from a single peer; files are not split into pieces or
  fetched from several peers at once, and an interrupted download is not resumed.
- There is no encryption or authentication of peers or the tracker.