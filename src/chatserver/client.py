"""
Console chat client.

    python -m chatserver.client --host 127.0.0.1 --port 5000 --name alice

The client is a thin peer: it sends its handle as the first line, prints
whatever the server sends from a background thread, sends every typed
line, and sends /quit before closing.
"""

import _thread
import argparse
import logging
import socket
import sys
import threading
import time
from typing import Callable, Optional

from .chat import protocol


logger = logging.getLogger(__name__)


def timestamped(line: str) -> str:
    """Local display format: "[18:22:05] bob: hi"."""
    return f"[{time.strftime('%H:%M:%S')}] {line}"


class ChatClient:
    """
    Socket side of the console client, usable on its own in scripts.

    Args:
        host: Server host.
        port: Server port.
        handle: Display name sent as the first line.
        encoding: Wire encoding.
    """

    def __init__(self, host: str, port: int, handle: str, encoding: str = "utf-8"):
        self.host = host
        self.port = port
        self.handle = handle
        self.encoding = encoding

        self._sock: Optional[socket.socket] = None
        self._reader = None
        self._writer = None
        self._write_lock = threading.Lock()
        self._receiver: Optional[threading.Thread] = None
        self.disconnected = threading.Event()

    @property
    def connected(self) -> bool:
        return self._sock is not None and not self.disconnected.is_set()

    def connect(self, timeout: Optional[float] = 10.0) -> "ChatClient":
        """Open the connection and send the handle."""
        sock = socket.create_connection((self.host, self.port), timeout=timeout)
        sock.settimeout(None)
        self._sock = sock
        self._reader = sock.makefile("r", encoding=self.encoding, newline="\n")
        self._writer = sock.makefile("w", encoding=self.encoding, newline="\n")
        self.disconnected.clear()
        self.send(self.handle)
        return self

    def send(self, text: str) -> bool:
        """Send one line. Returns False if the connection is gone."""
        if self._writer is None:
            return False
        with self._write_lock:
            try:
                self._writer.write(text + "\n")
                self._writer.flush()
            except (OSError, ValueError) as e:
                logger.debug(f"Send failed: {e}")
                self.disconnected.set()
                return False
        return True

    def read_line(self) -> Optional[str]:
        """Next line from the server, or None once it has closed."""
        if self._reader is None:
            return None
        try:
            line = self._reader.readline()
        except (OSError, ValueError):
            line = ""
        if not line:
            self.disconnected.set()
            return None
        return line.rstrip("\r\n")

    def listen(self, on_line: Callable[[str], None], on_close: Optional[Callable[[], None]] = None) -> threading.Thread:
        """Start a daemon thread that feeds every server line to on_line."""
        def receiver_loop():
            while True:
                line = self.read_line()
                if line is None:
                    break
                on_line(line)
            if on_close is not None:
                on_close()

        self._receiver = threading.Thread(target=receiver_loop, name="ChatClient-receiver", daemon=True)
        self._receiver.start()
        return self._receiver

    def quit(self):
        """Send the quit sentinel and close."""
        if self.connected:
            self.send("/quit")
        self.close()

    def close(self):
        self.disconnected.set()
        if self._sock is None:
            return
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        for f in (self._writer, self._reader):
            try:
                f.close()
            except (OSError, ValueError):
                pass
        self._sock.close()
        self._sock = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.quit()
        return False


def run_console(client: ChatClient, stdin=None, stdout=None) -> int:
    """Interactive loop: stdin lines go out, server lines are printed."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    finished = threading.Event()
    # Only the main thread can be woken out of a blocking stdin read
    wake_main = threading.current_thread() is threading.main_thread()

    def show(line: str):
        print(timestamped(line), file=stdout, flush=True)

    def closed():
        if finished.is_set():
            return
        print("** Disconnected from server **", file=stdout, flush=True)
        if wake_main:
            _thread.interrupt_main()

    client.listen(show, on_close=closed)

    try:
        for raw in stdin:
            text = raw.rstrip("\r\n")
            if protocol.is_quit(text):
                break
            if not client.send(text):
                break
    except KeyboardInterrupt:
        pass
    finally:
        finished.set()
        client.quit()

    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="chatserver-client", description="Console chat client")
    parser.add_argument("--host", "-H", default="127.0.0.1", help="Server host (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, default=protocol.DEFAULT_PORT, help="Server port (default: 5000)")
    parser.add_argument("--name", "-n", default=None, help="Your handle (prompted if omitted)")
    args = parser.parse_args(argv)

    handle = args.name
    if handle is None:
        handle = input("Enter your name: ")

    client = ChatClient(args.host, args.port, handle)
    try:
        client.connect()
    except OSError as e:
        print(f"Failed to connect to {args.host}:{args.port}: {e}", file=sys.stderr)
        return 1

    print(f"Connected to {args.host}:{args.port}. Type /quit to leave.")
    return run_console(client)


if __name__ == "__main__":
    sys.exit(main())
