"""
Battlesync Wire Protocol

Defines the fixed-size binary record exchanged between game peers.

Purpose:
	Provides the Packet dataclass and the encode/decode utilities for the
	single record type on the wire. Every record carries all fields
	regardless of its kind.

Workflow:
	1. Game peers send an INIT record right after connecting
	2. Afterwards every update travels as an ACTION_EVENT record
	3. Records are concatenated on the stream and split on RECORD_SIZE
	4. RecordBuffer keeps trailing partial records until the next read

ToDo:
	- Version byte in the header once a second record type exists
"""

import enum
import struct
import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)


# Little-endian, 4-byte aligned: kind, attack(x, y), damage(x, y), done + pad, 4x4 pose
RECORD_FORMAT = "<I4i?3x16f"
RECORD_SIZE = struct.calcsize(RECORD_FORMAT)

BOARD_SIZE = 10
SENTINEL = (-1, -1)

Coordinate = Tuple[int, int]


class BattlesyncError(Exception):
	"""Base class for battlesync errors."""


class MalformedRecordError(BattlesyncError, ValueError):
	"""Raised when bytes cannot be decoded into a valid Packet."""


class PacketKind(enum.IntEnum):
	"""Record kinds understood by the server."""
	INIT = 0
	ACTION_EVENT = 1


def identity_pose() -> np.ndarray:
	"""
	Return a fresh 4x4 identity transform.

	Returns:
		np.ndarray: float32 identity matrix.
	"""
	return np.eye(4, dtype=np.float32)


def is_valid_cell(coord: Coordinate) -> bool:
	"""
	Check whether a coordinate addresses a cell on the board.

	Args:
		coord: (x, y) pair.

	Returns:
		bool: True if both components lie in [0, BOARD_SIZE - 1].
	"""
	if len(coord) != 2:
		return False
	x, y = coord
	return 0 <= x < BOARD_SIZE and 0 <= y < BOARD_SIZE


def validate_coordinate(coord: Optional[Coordinate]) -> Optional[Coordinate]:
	"""
	Normalize an optional coordinate for use in a Packet.

	Args:
		coord: None or an (x, y) pair.

	Returns:
		Optional[Coordinate]: None, or the coordinate as a tuple of ints.

	Raises:
		ValueError: If the coordinate is outside the board.
	"""
	if coord is None:
		return None
	coord = (int(coord[0]), int(coord[1])) if len(coord) == 2 else tuple(coord)
	if not is_valid_cell(coord):
		raise ValueError(f"Coordinate {coord} is outside the {BOARD_SIZE}x{BOARD_SIZE} board")
	return coord


def as_pose(matrix) -> np.ndarray:
	"""
	Convert a 4x4 matrix-like value into a float32 pose array.

	Args:
		matrix: Anything numpy can turn into a 4x4 array.

	Returns:
		np.ndarray: Copy of the matrix as float32, shape (4, 4).

	Raises:
		ValueError: If the input does not have 16 elements in a 4x4 shape.
	"""
	pose = np.array(matrix, dtype=np.float32)
	if pose.shape != (4, 4):
		raise ValueError(f"Head pose must be a 4x4 matrix, got shape {pose.shape}")
	return pose


@dataclass(eq=False)
class Packet:
	"""
	One record on the wire.

	Args:
		kind: PacketKind, or the raw integer if the kind is unknown.
		attack: Attacked cell, or None if no attack in this record.
		damage: Damaged cell, or None if no damage in this record.
		done: Peer readiness / turn-completion flag.
		head_pose: 4x4 row-major head transform.
	"""
	kind: Union[PacketKind, int] = PacketKind.ACTION_EVENT
	attack: Optional[Coordinate] = None
	damage: Optional[Coordinate] = None
	done: bool = False
	head_pose: np.ndarray = field(default_factory=identity_pose)

	def __post_init__(self):
		self.attack = validate_coordinate(self.attack)
		self.damage = validate_coordinate(self.damage)
		self.done = bool(self.done)
		self.head_pose = as_pose(self.head_pose)

	def __eq__(self, other) -> bool:
		if not isinstance(other, Packet):
			return NotImplemented
		return (
			int(self.kind) == int(other.kind)
			and self.attack == other.attack
			and self.damage == other.damage
			and self.done == other.done
			and np.array_equal(self.head_pose, other.head_pose)
		)

	@classmethod
	def init(cls) -> "Packet":
		"""Build the connection handshake record."""
		return cls(kind=PacketKind.INIT)


def _to_wire(coord: Optional[Coordinate]) -> Coordinate:
	return SENTINEL if coord is None else coord


def _from_wire(x: int, y: int, name: str) -> Optional[Coordinate]:
	if (x, y) == SENTINEL:
		return None
	if not is_valid_cell((x, y)):
		raise MalformedRecordError(f"Invalid {name} coordinate on the wire: ({x}, {y})")
	return (x, y)


def encode(packet: Packet) -> bytes:
	"""
	Serialize a packet into exactly RECORD_SIZE bytes.

	Args:
		packet: Packet to encode.

	Returns:
		bytes: Fixed-size record.
	"""
	attack = _to_wire(packet.attack)
	damage = _to_wire(packet.damage)
	return struct.pack(
		RECORD_FORMAT,
		int(packet.kind),
		attack[0], attack[1],
		damage[0], damage[1],
		packet.done,
		*packet.head_pose.reshape(16).tolist(),
	)


def decode(data: bytes) -> Packet:
	"""
	Deserialize one record.

	Only the first RECORD_SIZE bytes are read; anything after them is ignored.

	Args:
		data: Bytes holding at least one full record.

	Returns:
		Packet: Decoded packet. Unknown kinds are kept as raw integers.

	Raises:
		MalformedRecordError: If data is shorter than RECORD_SIZE or a
			coordinate is neither a board cell nor the sentinel.
	"""
	if len(data) < RECORD_SIZE:
		raise MalformedRecordError(
			f"Record needs {RECORD_SIZE} bytes, got {len(data)}"
		)

	fields = struct.unpack_from(RECORD_FORMAT, data)
	raw_kind = fields[0]
	try:
		kind = PacketKind(raw_kind)
	except ValueError:
		kind = raw_kind

	packet = Packet(kind=kind)
	packet.attack = _from_wire(fields[1], fields[2], "attack")
	packet.damage = _from_wire(fields[3], fields[4], "damage")
	packet.done = fields[5]
	packet.head_pose = np.array(fields[6:], dtype=np.float32).reshape(4, 4)
	return packet


def split_records(data: bytes) -> Iterator[bytes]:
	"""
	Split a buffer of concatenated records.

	Args:
		data: Raw bytes from one or more reads.

	Yields:
		bytes: Each complete RECORD_SIZE slice in order. Trailing bytes
			that do not form a full record are dropped.
	"""
	count = len(data) // RECORD_SIZE
	for index in range(count):
		offset = index * RECORD_SIZE
		yield bytes(data[offset:offset + RECORD_SIZE])


class RecordBuffer:
	"""
	Accumulates stream bytes and hands out whole records.

	A record split across two reads is kept until its remaining bytes
	arrive instead of being dropped.

	Args:
		max_size: Upper bound on buffered bytes. Bytes beyond it are rejected.
	"""

	def __init__(self, max_size: int):
		if max_size < RECORD_SIZE:
			raise ValueError(
				f"max_size must hold at least one record ({RECORD_SIZE} bytes), got {max_size}"
			)
		self.max_size = max_size
		self._pending = bytearray()
		self.rejected_bytes = 0

	def __len__(self) -> int:
		return len(self._pending)

	def feed(self, data: bytes) -> List[bytes]:
		"""
		Append received bytes and return the complete records.

		Args:
			data: Newly received bytes (may be empty).

		Returns:
			List[bytes]: Complete records in arrival order.
		"""
		room = self.max_size - len(self._pending)
		if len(data) > room:
			excess = len(data) - room
			self.rejected_bytes += excess
			logger.warning(
				f"Inbound buffer limit of {self.max_size} bytes exceeded, rejecting {excess} bytes"
			)
			data = data[:room]

		self._pending.extend(data)
		records = list(split_records(self._pending))
		if records:
			del self._pending[:len(records) * RECORD_SIZE]
		return records

	def clear(self) -> None:
		"""Drop any buffered partial record."""
		self._pending.clear()
