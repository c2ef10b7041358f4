"""
Sync Client

Remote game peer side of the protocol.

Purpose:
	Connects to a SyncServer, performs the INIT handshake and exchanges
	ACTION_EVENT records without blocking the caller's frame loop.
"""

import errno
import socket
import logging
from typing import List, Optional

from battlesync.protocol import (
	Packet,
	PacketKind,
	RecordBuffer,
	decode,
	encode,
	identity_pose,
)
from battlesync.session_table import DEFAULT_MAX_PACKET_SIZE, RECV_CHUNK_SIZE

logger = logging.getLogger(__name__)


class SyncClient:
	"""
	Non-blocking peer connection.

	Args:
		host: Server host.
		port: Server port.
		max_buffer_size: Upper bound on buffered inbound bytes.
	"""

	def __init__(self, host: str, port: int, max_buffer_size: int = DEFAULT_MAX_PACKET_SIZE):
		self.host = host
		self.port = port
		self._socket: Optional[socket.socket] = None
		self._buffer = RecordBuffer(max_buffer_size)
		self._outbox = bytearray()

	@property
	def is_connected(self) -> bool:
		return self._socket is not None

	@property
	def pending_bytes(self) -> int:
		"""Bytes sent but not yet accepted by the socket."""
		return len(self._outbox)

	def connect(self, timeout: float = 5.0, send_init: bool = True) -> None:
		"""
		Connect to the server and announce ourselves.

		Args:
			timeout: Seconds to wait for the TCP connection.
			send_init: Send the INIT record once connected.

		Raises:
			OSError: If the connection cannot be established.
		"""
		sock = socket.create_connection((self.host, self.port), timeout=timeout)
		sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
		sock.setblocking(False)
		self._socket = sock
		logger.info(f"Connected to sync server at {self.host}:{self.port}")

		if send_init:
			self.send(Packet.init())

	def close(self) -> None:
		"""Close the connection and drop buffered and queued bytes."""
		if self._socket:
			try:
				self._socket.close()
			except OSError as e:
				logger.debug(f"Error closing client socket: {e}")
			self._socket = None
		self._buffer.clear()
		self._outbox.clear()

	def send(self, packet: Packet) -> None:
		"""
		Send one record.

		Bytes the socket cannot take right now stay queued and go out on
		the next send() or poll().

		Args:
			packet: Packet to send.

		Raises:
			ConnectionError: If not connected.
		"""
		if not self._socket:
			raise ConnectionError("Not connected to a sync server")
		self._outbox.extend(encode(packet))
		self._flush()

	def send_action(self, attack=None, damage=None, done: bool = False, head_pose=None) -> None:
		"""Build and send an ACTION_EVENT record."""
		if head_pose is None:
			head_pose = identity_pose()
		self.send(Packet(
			kind=PacketKind.ACTION_EVENT,
			attack=attack,
			damage=damage,
			done=done,
			head_pose=head_pose,
		))

	def poll(self) -> List[Packet]:
		"""
		Decode every complete record received so far.

		Returns:
			List[Packet]: Packets in arrival order, empty if none.

		Raises:
			ConnectionError: If the server closed the connection.
		"""
		if not self._socket:
			return []
		self._flush()

		packets = []
		while True:
			try:
				data = self._socket.recv(RECV_CHUNK_SIZE)
			except BlockingIOError:
				break
			except OSError as e:
				if e.errno in (errno.EAGAIN, errno.EWOULDBLOCK):
					break
				logger.error(f"Error receiving from sync server: {e}")
				self.close()
				raise

			if not data:
				self.close()
				raise ConnectionError("Server closed the connection")

			for record in self._buffer.feed(data):
				packets.append(decode(record))

		return packets

	def _flush(self) -> None:
		while self._outbox and self._socket:
			try:
				sent = self._socket.send(self._outbox)
			except BlockingIOError:
				return
			except OSError as e:
				if e.errno in (errno.EAGAIN, errno.EWOULDBLOCK):
					return
				logger.error(f"Error sending to sync server: {e}")
				self.close()
				raise
			del self._outbox[:sent]
