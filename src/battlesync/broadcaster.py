"""
Broadcaster

Sends the local outgoing state to every connected peer.
"""

import logging

from battlesync.aggregator import StateAggregator
from battlesync.protocol import encode
from battlesync.session_table import SessionTable

logger = logging.getLogger(__name__)


class Broadcaster:
	"""
	Serializes outgoing state once per request and fans it out.

	Args:
		session_table: Table whose sessions receive the bytes.
		aggregator: Source of the outgoing state.
	"""

	def __init__(self, session_table: SessionTable, aggregator: StateAggregator):
		self.session_table = session_table
		self.aggregator = aggregator
		self.broadcast_count = 0

	def broadcast(self) -> int:
		"""
		Send the current outgoing state to all registered sessions.

		my_attack and my_damage are consumed even if a send fails; they
		are not retried.

		Returns:
			int: Number of sessions the record was queued for.
		"""
		packet = self.aggregator.drain_outgoing()
		data = encode(packet)
		delivered = self.session_table.send_to_all(data)
		self.broadcast_count += 1
		logger.debug(
			f"Broadcast #{self.broadcast_count} to {delivered} session(s): "
			f"attack={packet.attack} damage={packet.damage} done={packet.done}"
		)
		return delivered
