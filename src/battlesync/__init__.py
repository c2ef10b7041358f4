"""
Battlesync

Session synchronization engine for a two-peer VR battleship game.

Purpose:
	Accepts peer connections, decodes fixed-size action records, merges
	them into the shared game state and rebroadcasts the local state to
	every peer on each tick.

Workflow:
	1. SessionTable accepts non-blocking TCP connections
	2. protocol splits and decodes the fixed-size records
	3. StateAggregator merges records into the mirrored peer state
	4. Broadcaster sends the local state to every session
	5. SyncServer.tick() drives all of the above once per frame
"""

from battlesync.protocol import (
	BattlesyncError,
	MalformedRecordError,
	Packet,
	PacketKind,
	RecordBuffer,
	RECORD_SIZE,
	decode,
	encode,
	split_records,
)
from battlesync.session_table import SessionTable, SessionTableConfig
from battlesync.aggregator import StateAggregator
from battlesync.broadcaster import Broadcaster
from battlesync.server import SyncServer, SyncServerConfig
from battlesync.client import SyncClient
from battlesync.config import Config

__all__ = [
	"BattlesyncError",
	"MalformedRecordError",
	"Packet",
	"PacketKind",
	"RecordBuffer",
	"RECORD_SIZE",
	"decode",
	"encode",
	"split_records",
	"SessionTable",
	"SessionTableConfig",
	"StateAggregator",
	"Broadcaster",
	"SyncServer",
	"SyncServerConfig",
	"SyncClient",
	"Config",
]
