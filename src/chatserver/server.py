"""
=============================================================================
MAIN CHAT SERVER
=============================================================================

The orchestrator that ties the components together.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CHAT SERVER ARCHITECTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   ChatServer    │                          │
    │                        │ (Orchestrator)  │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │ SocketServer │    │  ThreadPool  │    │   Registry   │        │
    │    │ (accepting)  │    │ (1 thread per│    │ (live        │        │
    │    └──────┬───────┘    │  session)    │    │  sessions)   │        │
    │           │            └──────┬───────┘    └──────┬───────┘        │
    │           ▼                   ▼                   ▼                 │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │  Connection  │───►│SessionHandler│───►│ Broadcaster  │        │
    │    │ (line I/O)   │    │ (protocol)   │    │ (fan-out)    │        │
    │    └──────────────┘    └──────────────┘    └──────────────┘        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONNECTION LIFECYCLE
=============================================================================

    1. CLIENT CONNECTS
       └── SocketServer accepts, wraps socket in a Connection
    2. SESSION CREATED
       └── Session(connection), plus an Outbox if outbound_queue is on
    3. HANDED TO THE POOL
       └── ThreadPool runs SessionHandler.serve(session) on its own worker
       └── Pool full? → "[Server] Server is full, ..." and close
    4. CHAT
       └── handle, join notice, messages, bot replies
    5. LEAVE
       └── leave notice, unregister, close

=============================================================================
"""

import logging
import random
import threading
from typing import Optional, Callable, Set, Tuple

from .config import ServerConfig
from .core import SocketServer, Connection, ThreadPool
from .chat import Broadcaster, Outbox, Registry, ReplyGenerator, Session, SessionHandler
from .chat import protocol
from .chatlog import ChatEventLogger, configure_logging


logger = logging.getLogger(__name__)


class ChatServer:
    """
    Multi-client TCP chat server.

    =========================================================================
    USAGE
    =========================================================================

        server = ChatServer(ServerConfig(port=5000))
        server.run()            # blocks until Ctrl+C / SIGTERM

    From another thread (tests, embedding):

        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        server.wait_until_ready(timeout=5)
        host, port = server.bound_address
        ...
        server.shutdown()

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        replies: Optional[Callable[[str], str]] = None,
        configure_logs: bool = True,
    ):
        """
        Args:
            config: Server configuration. Uses defaults if not provided.
            replies: Bot reply function; defaults to ReplyGenerator().
            configure_logs: Install root log handlers on run(). Turn off
                            when embedding in an app that owns logging.
        """
        self.config = config or ServerConfig()
        self.config.validate()
        self._configure_logs = configure_logs

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_clients,
        )

        self.registry = Registry()
        self.broadcaster = Broadcaster(self.registry)
        self.events = ChatEventLogger(self.config.log_format)
        self.handler = SessionHandler(
            registry=self.registry,
            broadcaster=self.broadcaster,
            replies=replies or ReplyGenerator(rng=random.Random()),
            fallback_handle=self.config.fallback_handle,
            events=self.events,
        )

        # Every session on a pool worker, joined or not. Clients that have
        # not sent a handle yet are only reachable from here.
        self._serving: Set[Session] = set()
        self._serving_lock = threading.Lock()

        self._running = False
        self._stopped = threading.Event()

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def bound_address(self) -> Optional[Tuple[str, int]]:
        """(host, port) actually listened on, once ready."""
        return self._socket_server.bound_address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listening socket is up. Returns False on timeout."""
        return self._socket_server.ready.wait(timeout)

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Start the server (blocking).

        Args:
            host: Override config host.
            port: Override config port.

        Raises:
            OSError: If the listening socket cannot be bound.
        """
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port

        if self._configure_logs:
            configure_logging(self.config.log_level, self.config.log_format)

        self._running = True
        self._stopped.clear()
        self._thread_pool.start()

        logger.info(f"Starting {self.config.server_name} on {self.config.host}:{self.config.port}")

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Ask a running server to stop, from any thread.

        Returns:
            True once run() has finished cleaning up, False on timeout.
        """
        self._socket_server.shutdown()
        if not self._running:
            return True
        return self._stopped.wait(timeout)

    def _shutdown(self):
        """
        Graceful shutdown.

        1. Accept loop has already stopped (listening socket closed)
        2. Tell everyone the server is going away
        3. Close every registered session; their threads wake up and run
           the normal leave sequence
        4. Close sessions still waiting for a handle
        5. Shut down the pool, waiting up to shutdown_timeout
        """
        logger.info("Shutting down server...")
        self._running = False

        if len(self.registry):
            self.broadcaster.announce(protocol.shutting_down())
        closed = self.registry.close_all()
        if closed:
            logger.info(f"Closed {closed} active sessions")

        # Also reaches clients that have not sent a handle yet, and any
        # session that joined after the registry snapshot above
        with self._serving_lock:
            serving = list(self._serving)
        unjoined = sum(1 for s in serving if s.handle is None)
        for session in serving:
            session.close()
        if unjoined:
            logger.info(f"Closed {unjoined} sessions that had not joined")

        self._thread_pool.shutdown(wait=True, timeout=self.config.shutdown_timeout)

        logger.info("Server stopped")
        self._stopped.set()

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _create_session(self, conn: Connection) -> Session:
        outbox = None
        if self.config.outbound_queue:
            outbox = Outbox(conn, maxsize=self.config.outbound_queue_size).start()
        return Session(conn, outbox=outbox)

    def _serve(self, session: Session):
        """Pool task: run the session and keep it reachable for shutdown."""
        try:
            self.handler.serve(session)
        finally:
            self._forget(session)

    def _forget(self, session: Session):
        with self._serving_lock:
            self._serving.discard(session)

    def _handle_connection(self, conn: Connection):
        """
        Called by SocketServer on the accept thread for each new client.

        Must not block: the session runs on a pool worker.
        """
        session = self._create_session(conn)
        with self._serving_lock:
            self._serving.add(session)

        try:
            submitted = self._thread_pool.submit(self._serve, args=(session,))
        except RuntimeError as e:
            # Pool is shutting down underneath the accept loop
            logger.debug(f"[{conn.id}] Not serving {conn.peer}: {e}")
            self._forget(session)
            session.close()
            return

        if not submitted:
            self._forget(session)
            logger.warning(f"[{conn.id}] Session limit ({self.config.max_clients}) reached, rejecting {conn.peer}")
            self.events.rejected(session, "server full")
            session.write_line(protocol.server_full())
            session.close()

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def stats(self) -> dict:
        """Snapshot of sessions, broadcast counters and pool usage."""
        return {
            "online": len(self.registry),
            "handles": list(self.registry.handles()),
            "broadcast": self.broadcaster.stats,
            "pool": self._thread_pool.stats,
        }


def create_server(config: Optional[ServerConfig] = None) -> ChatServer:
    """Factory for ChatServer instances."""
    return ChatServer(config)
