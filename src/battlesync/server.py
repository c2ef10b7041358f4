"""
Sync Server

Per-frame driver for the session synchronization engine.

Purpose:
	Ties the session table, codec, aggregator and broadcaster together
	behind a single tick() the host calls once per rendered frame.

Workflow:
	1. Flush queued output and accept every pending connection
	2. Receive available bytes from each session
	3. Split the bytes into records, keeping partial ones for the next tick
	4. Merge each record and broadcast whenever the merge asks for it
"""

import time
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from battlesync.aggregator import StateAggregator
from battlesync.broadcaster import Broadcaster
from battlesync.protocol import MalformedRecordError, RecordBuffer, decode
from battlesync.session_table import SessionTable, SessionTableConfig

logger = logging.getLogger(__name__)


DEFAULT_TICK_RATE = 90.0


@dataclass
class SyncServerConfig:
	"""
	Configuration for the frame loop.

	Args:
		tick_rate: Ticks per second used by run().
		prune_closed_sessions: Remove sessions whose peer closed the stream.
	"""
	tick_rate: float = DEFAULT_TICK_RATE
	prune_closed_sessions: bool = False


@dataclass
class TickStats:
	"""Counters for one tick."""
	accepted: int = 0
	records: int = 0
	malformed: int = 0
	broadcasts: int = 0


class SyncServer:
	"""
	Authoritative synchronization server.

	Args:
		table_config: Session table configuration.
		config: Frame loop configuration.
		aggregator: Existing aggregator to share with game logic.
	"""

	def __init__(
		self,
		table_config: Optional[SessionTableConfig] = None,
		config: Optional[SyncServerConfig] = None,
		aggregator: Optional[StateAggregator] = None,
	):
		self.config = config or SyncServerConfig()
		self.session_table = SessionTable(table_config)
		self.aggregator = aggregator or StateAggregator()
		self.broadcaster = Broadcaster(self.session_table, self.aggregator)
		self._buffers: Dict[int, RecordBuffer] = {}
		self._running = False

	@property
	def is_running(self) -> bool:
		return self._running

	def start(self) -> None:
		"""
		Start listening for peers.

		Raises:
			OSError: If the listening socket cannot be bound.
		"""
		self.session_table.start()
		self._running = True

	def request_stop(self) -> None:
		"""Make run() return after the current tick."""
		self._running = False

	def stop(self) -> None:
		"""Stop the loop and close all connections."""
		self._running = False
		self.session_table.close()
		self._buffers.clear()
		logger.info("Sync server stopped")

	def remove_session(self, session_id: int) -> bool:
		"""
		Remove a session and its buffered bytes.

		Args:
			session_id: Session to remove.

		Returns:
			bool: True if the session existed.
		"""
		self._buffers.pop(session_id, None)
		return self.session_table.remove(session_id)

	def tick(self) -> TickStats:
		"""
		Run one accept/receive/merge/broadcast pass.

		Returns:
			TickStats: What happened during this tick.
		"""
		stats = TickStats()
		self.session_table.flush()

		while True:
			session_id = self.session_table.accept_pending()
			if session_id is None:
				break
			self._buffers[session_id] = RecordBuffer(self.session_table.config.max_packet_size)
			stats.accepted += 1

		for session_id in self.session_table.session_ids:
			self._process_session(session_id, stats)

		if self.config.prune_closed_sessions:
			for session_id in self.session_table.closed_ids():
				self.remove_session(session_id)

		return stats

	def _process_session(self, session_id: int, stats: TickStats) -> None:
		"""
		Decode and merge everything a session sent since the last tick.

		A malformed record discards the rest of this session's records
		for the tick.

		Args:
			session_id: Session to service.
			stats: Counters to update.
		"""
		buffer = self._buffers.setdefault(
			session_id, RecordBuffer(self.session_table.config.max_packet_size)
		)
		# Bytes the buffer cannot hold stay in the socket
		data = self.session_table.receive(session_id, limit=buffer.max_size - len(buffer))
		if not data:
			return

		for record in buffer.feed(data):
			try:
				packet = decode(record)
			except MalformedRecordError as e:
				logger.warning(f"Discarding malformed record from client {session_id}: {e}")
				stats.malformed += 1
				buffer.clear()
				return

			stats.records += 1
			if self.aggregator.merge(packet):
				self.broadcaster.broadcast()
				stats.broadcasts += 1

	def run(self, max_ticks: Optional[int] = None) -> None:
		"""
		Tick at config.tick_rate until request_stop() or stop() is called.

		Args:
			max_ticks: Stop after this many ticks (runs forever if None).
		"""
		if not self.session_table.is_listening:
			self.start()

		interval = 1.0 / self.config.tick_rate if self.config.tick_rate > 0 else 0.0
		ticks = 0
		while self._running and (max_ticks is None or ticks < max_ticks):
			started = time.monotonic()
			self.tick()
			ticks += 1

			remaining = interval - (time.monotonic() - started)
			if remaining > 0:
				time.sleep(remaining)
