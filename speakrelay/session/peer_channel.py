"""Relay channel over direct peer-to-peer WebSocket connections."""

import logging
import threading
from typing import List, Optional, Set

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect as ws_connect
from websockets.sync.server import serve as ws_serve

from ..errors import ChannelUnavailableError
from ..models.messages import SignalingMessage, message_to_json
from ..models.session import Role
from .channel import MessageHandler, SessionChannel
from .ids import host_peer_id, peer_port

logger = logging.getLogger(__name__)


class PeerSessionChannel(SessionChannel):
    """Host listens under a well-known peer id; guests dial it directly.

    The host's address is derived from the session id alone: the peer id is
    ``<session id>-host`` and the port is a hash of that id, so a guest only
    needs the session code and the host's network address. A guest that
    cannot reach the host keeps retrying with a fixed backoff until it gets
    through or the channel is closed. Messages a guest sends while not yet
    connected are queued and flushed, in order, once the connection opens.
    """

    def __init__(self,
                 session_id: str,
                 remote_host: str = "127.0.0.1",
                 bind_host: str = "0.0.0.0",
                 port: Optional[int] = None,
                 retry_delay: float = 2.0,
                 open_timeout: float = 5.0):
        """Initialize peer channel.

        Args:
            session_id: Session id (normalized on the way in)
            remote_host: Address guests dial to reach the host
            bind_host: Interface the host listens on
            port: Override the port derived from the peer id
            retry_delay: Seconds between guest dial attempts
            open_timeout: WebSocket handshake timeout per attempt
        """
        super().__init__(session_id)
        self.peer_id = host_peer_id(self.session_id)
        self.port = port if port is not None else peer_port(self.peer_id)
        self.remote_host = remote_host
        self.bind_host = bind_host
        self.retry_delay = retry_delay
        self.open_timeout = open_timeout

        self._closed = threading.Event()
        self._lock = threading.RLock()
        self._thread: Optional[threading.Thread] = None

        # Host side
        self.server = None
        self.peers: Set = set()

        # Guest side
        self._connection = None
        self._outbox: List[str] = []
        self.connected = threading.Event()
        self.dial_attempts = 0

    @property
    def uri(self) -> str:
        return f"ws://{self.remote_host}:{self.port}/{self.peer_id}"

    def connect(self, role: Role, on_message: MessageHandler) -> None:
        self.role = role
        self.on_message = on_message
        self._closed.clear()
        if role is Role.HOST:
            self._start_host()
        else:
            self._thread = threading.Thread(target=self._dial_loop, daemon=True)
            self._thread.name = f"PeerDial-{self.peer_id}"
            self._thread.start()

    # Host

    def _start_host(self) -> None:
        try:
            self.server = ws_serve(self._handle_peer, self.bind_host, self.port)
        except OSError as e:
            raise ChannelUnavailableError(f"Cannot listen as {self.peer_id} on port {self.port}: {e}") from e
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.name = f"PeerHost-{self.peer_id}"
        self._thread.start()
        logger.info(f"Listening as {self.peer_id} on {self.bind_host}:{self.port}")

    def _handle_peer(self, connection) -> None:
        path = connection.request.path if connection.request else ""
        if path.rstrip("/") != f"/{self.peer_id}":
            logger.warning(f"Refusing peer dialing unknown id {path!r}")
            connection.close(code=1008, reason="unknown peer id")
            return

        with self._lock:
            self.peers.add(connection)
        logger.info(f"Peer connected to {self.peer_id} ({len(self.peers)} total)")
        try:
            for raw in connection:
                self._deliver(raw)
        except ConnectionClosed:
            pass
        finally:
            with self._lock:
                self.peers.discard(connection)
            logger.info(f"Peer disconnected from {self.peer_id} ({len(self.peers)} left)")

    # Guest

    def _dial_loop(self) -> None:
        while not self._closed.is_set():
            try:
                connection = ws_connect(self.uri, open_timeout=self.open_timeout)
            except (OSError, TimeoutError, WebSocketException) as e:
                self.dial_attempts += 1
                logger.info(f"Host {self.peer_id} not reachable (attempt {self.dial_attempts}), "
                            f"retrying in {self.retry_delay}s: {e}")
                self._closed.wait(self.retry_delay)
                continue

            with connection:
                if not self._attach(connection):
                    return
                try:
                    for raw in connection:
                        self._deliver(raw)
                except ConnectionClosed:
                    pass
                finally:
                    with self._lock:
                        self._connection = None
                        self.connected.clear()
            if not self._closed.is_set():
                logger.warning(f"Lost connection to host {self.peer_id}, redialing")
                self._closed.wait(self.retry_delay)

    def _attach(self, connection) -> bool:
        """Make ``connection`` current and flush the outbox. False if the channel closed meanwhile."""
        with self._lock:
            if self._closed.is_set():
                return False
            self._connection = connection
            flushed = 0
            try:
                while self._outbox:
                    connection.send(self._outbox[0])
                    self._outbox.pop(0)
                    flushed += 1
            except ConnectionClosed:
                # unsent messages stay queued for the next connection
                self._connection = None
            else:
                self.connected.set()
        logger.info(f"Connected to host {self.peer_id} ({flushed} queued messages flushed)")
        return True

    def send(self, message: SignalingMessage) -> None:
        payload = message_to_json(message)
        with self._lock:
            if self.role is Role.HOST:
                for peer in list(self.peers):
                    try:
                        peer.send(payload)
                    except ConnectionClosed:
                        self.peers.discard(peer)
                return

            if self._connection is not None:
                try:
                    self._connection.send(payload)
                    return
                except ConnectionClosed:
                    self._connection = None
            self._outbox.append(payload)
            logger.debug(f"Queued {message.type} until host {self.peer_id} is reachable")

    def close(self) -> None:
        self._closed.set()
        self.on_message = None
        with self._lock:
            connections = list(self.peers)
            if self._connection is not None:
                connections.append(self._connection)
            self._connection = None
            self.peers.clear()
            self._outbox.clear()
        for connection in connections:
            connection.close()
        if self.server is not None:
            self.server.shutdown()
            self.server = None
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.open_timeout + 1.0)
            if self._thread.is_alive():
                logger.warning(f"Peer thread for {self.peer_id} did not stop cleanly")
        self._thread = None
        logger.info(f"Closed peer channel {self.peer_id}")
