"""
Session Table

Non-blocking TCP connection registry for game peers.

Purpose:
	Owns the listening socket and every accepted peer socket, assigns
	session identifiers and provides non-blocking receive and
	broadcast-send.

Workflow:
	1. start() binds the listening socket in non-blocking mode
	2. accept_pending() registers at most one new peer per call
	3. receive() drains whatever bytes a peer has sent so far
	4. send_to_all() queues identical bytes for every registered peer and
	   flush() pushes queued bytes out as the peers drain their sockets
	5. remove() closes a session explicitly; nothing is pruned implicitly
"""

import errno
import itertools
import socket
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


# Default configuration values
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 6881
DEFAULT_BACKLOG = 5
DEFAULT_MAX_PACKET_SIZE = 1_000_000
RECV_CHUNK_SIZE = 65536


@dataclass
class SessionTableConfig:
	"""
	Configuration for the session table.

	Args:
		host: Host address to bind to.
		port: Port number to listen on (0 picks a free port).
		backlog: Listen backlog.
		max_packet_size: Maximum bytes read from one session per receive(),
			and maximum bytes queued for one session awaiting send.
	"""
	host: str = DEFAULT_HOST
	port: int = DEFAULT_PORT
	backlog: int = DEFAULT_BACKLOG
	max_packet_size: int = DEFAULT_MAX_PACKET_SIZE


@dataclass
class Session:
	"""One accepted peer connection."""
	session_id: int
	sock: socket.socket
	address: Any = None
	outbox: bytearray = field(default_factory=bytearray)


class SessionTable:
	"""
	Registry of live peer connections.

	Identifiers come from a counter owned by this instance, start at 0
	and are never reused, even after remove().

	Args:
		config: Table configuration (uses defaults if None).
	"""

	def __init__(self, config: Optional[SessionTableConfig] = None):
		self.config = config or SessionTableConfig()
		self._socket: Optional[socket.socket] = None
		self._sessions: Dict[int, Session] = {}
		self._closed: Set[int] = set()
		self._ids = itertools.count()

	@property
	def is_listening(self) -> bool:
		return self._socket is not None

	@property
	def address(self) -> Optional[Tuple[str, int]]:
		"""
		Address the listening socket is bound to.

		Returns:
			Optional[Tuple[str, int]]: (host, port) or None if not started.
		"""
		if not self._socket:
			return None
		return self._socket.getsockname()[:2]

	@property
	def session_ids(self) -> List[int]:
		return list(self._sessions)

	def __len__(self) -> int:
		return len(self._sessions)

	def __contains__(self, session_id: int) -> bool:
		return session_id in self._sessions

	def start(self) -> None:
		"""
		Bind and listen without blocking.

		Raises:
			OSError: If the port is already in use or binding fails.
		"""
		if self._socket:
			logger.warning("Session table already listening")
			return

		try:
			self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
			self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
			self._socket.bind((self.config.host, self.config.port))
			self._socket.listen(self.config.backlog)
			self._socket.setblocking(False)
			host, port = self.address
			logger.info(f"Session table listening on {host}:{port}")
		except OSError as e:
			logger.error(f"Failed to start session table: {e}")
			self.close()
			raise

	def close(self) -> None:
		"""Close every session and the listening socket."""
		for session_id in list(self._sessions):
			self.remove(session_id)

		if self._socket:
			try:
				self._socket.close()
			except OSError as e:
				logger.debug(f"Error closing listening socket: {e}")
			self._socket = None

	def accept_pending(self) -> Optional[int]:
		"""
		Accept one pending connection, if any.

		Returns:
			Optional[int]: New session id, or None if nothing was pending
				or the accept failed (it is retried on the next poll).
		"""
		if not self._socket:
			return None

		try:
			client, address = self._socket.accept()
		except BlockingIOError:
			return None
		except OSError as e:
			logger.error(f"Error accepting connection: {e}")
			return None

		client.setblocking(False)
		try:
			client.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
		except OSError as e:
			logger.debug(f"Could not disable Nagle on {address}: {e}")

		session_id = next(self._ids)
		self._sessions[session_id] = Session(session_id, client, address)
		logger.info(f"Client {session_id} connected from {address}")
		return session_id

	def receive(self, session_id: int, limit: Optional[int] = None) -> bytes:
		"""
		Read everything currently available from a session.

		At most `limit` bytes (config.max_packet_size by default) are
		returned per call; the rest stays in the socket for the next poll.
		Callers with a bounded record buffer pass its free space so that
		bytes it cannot hold are never taken off the stream.

		Args:
			session_id: Session to read from.
			limit: Maximum bytes to read, capped at config.max_packet_size.

		Returns:
			bytes: Received bytes, empty if nothing was available.

		Raises:
			KeyError: If the session is not registered.
		"""
		session = self._sessions[session_id]
		if limit is None or limit > self.config.max_packet_size:
			limit = self.config.max_packet_size
		chunks = []
		received = 0

		while received < limit:
			try:
				chunk = session.sock.recv(min(RECV_CHUNK_SIZE, limit - received))
			except BlockingIOError:
				break
			except OSError as e:
				if e.errno in (errno.EAGAIN, errno.EWOULDBLOCK):
					break
				logger.error(f"Error receiving from client {session_id}: {e}")
				self._mark_closed(session_id)
				break

			if not chunk:
				self._mark_closed(session_id)
				break

			chunks.append(chunk)
			received += len(chunk)

		if limit > 0 and received >= limit:
			logger.debug(
				f"Client {session_id} hit the {limit} byte receive limit, deferring the rest"
			)
		return b"".join(chunks)

	def send_to_all(self, data: bytes) -> int:
		"""
		Send identical bytes to every session registered right now.

		The bytes are appended to each session's outbound queue and as much
		of the queue as the socket accepts is written immediately. Whatever
		the socket refuses stays queued for flush(), so a record is never
		left half-written on the stream. A session whose queue would grow
		beyond config.max_packet_size skips this message entirely.

		Sessions accepted while this call runs are not included. A failure
		on one session is logged and does not stop delivery to the others.

		Args:
			data: Bytes to send.

		Returns:
			int: Number of sessions the bytes were handed to.
		"""
		delivered = 0
		for session in list(self._sessions.values()):
			if len(session.outbox) + len(data) > self.config.max_packet_size:
				logger.warning(
					f"Client {session.session_id} has {len(session.outbox)} unsent bytes, "
					f"dropping {len(data)} byte message"
				)
				continue

			session.outbox.extend(data)
			delivered += 1
			self._flush_session(session)
		return delivered

	def flush(self) -> int:
		"""
		Write queued outbound bytes to every session without blocking.

		Returns:
			int: Bytes still queued across all sessions.
		"""
		for session in list(self._sessions.values()):
			self._flush_session(session)
		return sum(len(s.outbox) for s in self._sessions.values())

	def pending_bytes(self, session_id: int) -> int:
		"""
		Bytes queued for a session but not yet accepted by its socket.

		Raises:
			KeyError: If the session is not registered.
		"""
		return len(self._sessions[session_id].outbox)

	def _flush_session(self, session: Session) -> None:
		while session.outbox:
			try:
				sent = session.sock.send(session.outbox)
			except BlockingIOError:
				return
			except OSError as e:
				if e.errno in (errno.EAGAIN, errno.EWOULDBLOCK):
					return
				logger.error(f"Error sending to client {session.session_id}: {e}")
				session.outbox.clear()
				self._mark_closed(session.session_id)
				return
			del session.outbox[:sent]

	def remove(self, session_id: int) -> bool:
		"""
		Close and forget a session.

		Args:
			session_id: Session to remove.

		Returns:
			bool: True if the session existed.
		"""
		session = self._sessions.pop(session_id, None)
		self._closed.discard(session_id)
		if session is None:
			return False

		try:
			session.sock.close()
		except OSError as e:
			logger.debug(f"Error closing client {session_id} socket: {e}")
		logger.info(f"Client {session_id} removed")
		return True

	def closed_ids(self) -> List[int]:
		"""
		Sessions whose peer has closed the stream.

		They stay registered until remove() is called.

		Returns:
			List[int]: Session ids in ascending order.
		"""
		return sorted(self._closed)

	def _mark_closed(self, session_id: int) -> None:
		if session_id not in self._closed:
			self._closed.add(session_id)
			logger.info(f"Client {session_id} closed its connection")
