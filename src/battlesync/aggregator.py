"""
State Aggregator

Canonical peer-visible state for the local player.

Purpose:
	Merges decoded records from the remote peer into the mirrored
	"other" fields and holds the local "my" fields until the broadcaster
	consumes them.

Workflow:
	1. Game logic writes my_* fields before each tick
	2. merge() folds each incoming record into other_* fields
	3. merge() returns True whenever the record asks for a broadcast
	4. drain_outgoing() hands the broadcaster a Packet and clears one-shots
"""

import logging
from typing import Optional

import numpy as np

from battlesync.protocol import (
	Coordinate,
	Packet,
	PacketKind,
	as_pose,
	identity_pose,
	validate_coordinate,
)

logger = logging.getLogger(__name__)


class StateAggregator:
	"""
	Local and mirrored peer state.

	my_attack and my_damage are one-shot: they are delivered by at most one
	broadcast and can only be read-and-cleared through drain_outgoing().
	my_head_pose and my_done stay valid until game logic overwrites them.
	"""

	def __init__(self):
		self.reset()

	def reset(self) -> None:
		"""Restore the state a fresh game starts with."""
		self._my_attack: Optional[Coordinate] = None
		self._my_damage: Optional[Coordinate] = None
		self._my_head_pose = identity_pose()
		self._my_done = False

		self._other_attack: Optional[Coordinate] = None
		self._other_damage: Optional[Coordinate] = None
		self._other_head_pose = identity_pose()
		self._other_done = False
		# The local player opens the game
		self._turn_flag = True

	# ------------------------------------------------------------------
	# Outgoing fields (written by game logic)
	# ------------------------------------------------------------------

	@property
	def my_attack(self) -> Optional[Coordinate]:
		return self._my_attack

	def set_my_attack(self, coord: Optional[Coordinate]) -> None:
		"""
		Queue an attack for the next broadcast.

		Args:
			coord: Board cell to attack, or None to cancel.

		Raises:
			ValueError: If the cell is off the board.
		"""
		self._my_attack = validate_coordinate(coord)

	@property
	def my_damage(self) -> Optional[Coordinate]:
		return self._my_damage

	def set_my_damage(self, coord: Optional[Coordinate]) -> None:
		"""
		Queue a damage report for the next broadcast.

		Args:
			coord: Board cell that was hit, or None to cancel.

		Raises:
			ValueError: If the cell is off the board.
		"""
		self._my_damage = validate_coordinate(coord)

	@property
	def my_head_pose(self) -> np.ndarray:
		return self._my_head_pose.copy()

	@my_head_pose.setter
	def my_head_pose(self, matrix) -> None:
		self._my_head_pose = as_pose(matrix)

	@property
	def my_done(self) -> bool:
		return self._my_done

	@my_done.setter
	def my_done(self, value: bool) -> None:
		self._my_done = bool(value)

	# ------------------------------------------------------------------
	# Incoming fields (read by game logic)
	# ------------------------------------------------------------------

	@property
	def other_attack(self) -> Optional[Coordinate]:
		return self._other_attack

	@property
	def other_damage(self) -> Optional[Coordinate]:
		return self._other_damage

	@property
	def other_head_pose(self) -> np.ndarray:
		return self._other_head_pose.copy()

	@property
	def other_done(self) -> bool:
		return self._other_done

	@property
	def turn_flag(self) -> bool:
		"""True once the remote peer has attacked and it is our move."""
		return self._turn_flag

	def take_other_attack(self) -> Optional[Coordinate]:
		"""
		Return the pending remote attack and clear it.

		Returns:
			Optional[Coordinate]: The attacked cell, or None.
		"""
		attack, self._other_attack = self._other_attack, None
		return attack

	def take_other_damage(self) -> Optional[Coordinate]:
		"""
		Return the pending remote damage report and clear it.

		Returns:
			Optional[Coordinate]: The damaged cell, or None.
		"""
		damage, self._other_damage = self._other_damage, None
		return damage

	def clear_turn_flag(self) -> None:
		"""Hand the turn to the remote peer after firing."""
		self._turn_flag = False

	# ------------------------------------------------------------------
	# Merge / drain
	# ------------------------------------------------------------------

	def merge(self, packet: Packet) -> bool:
		"""
		Fold one decoded record into the mirrored state.

		Args:
			packet: Record received from a peer.

		Returns:
			bool: True if a broadcast of the outgoing state should follow.
		"""
		if packet.kind == PacketKind.INIT:
			logger.info("Received init packet, sending current state")
			return True

		if packet.kind == PacketKind.ACTION_EVENT:
			if packet.attack is not None:
				self._other_attack = packet.attack
				self._turn_flag = True
			if packet.damage is not None:
				self._other_damage = packet.damage
			self._other_done = packet.done
			self._other_head_pose = packet.head_pose.copy()
			logger.debug(
				f"Merged action event: attack={packet.attack} damage={packet.damage} done={packet.done}"
			)
			return True

		logger.warning(f"Ignoring packet with unknown kind {packet.kind}")
		return False

	def drain_outgoing(self) -> Packet:
		"""
		Build the outgoing ACTION_EVENT and clear the one-shot fields.

		Returns:
			Packet: Snapshot of my_* fields.
		"""
		packet = Packet(
			kind=PacketKind.ACTION_EVENT,
			attack=self._my_attack,
			damage=self._my_damage,
			done=self._my_done,
			head_pose=self._my_head_pose,
		)
		self._my_attack = None
		self._my_damage = None
		return packet
