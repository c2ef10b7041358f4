#!/usr/bin/env python
"""
Battlesync Server

Standalone entry point for the session synchronization server.

Purpose:
	Loads configuration, starts listening for game peers and ticks the
	server at a fixed rate until interrupted. In the game itself the host
	frame loop calls SyncServer.tick() directly instead.

Usage:
	python scripts/run_server.py --config configs/server_config.yaml
	python scripts/run_server.py --port 7000 --tick-rate 60 -v
	python scripts/run_server.py --log-level WARNING
"""

import argparse
import logging
import signal
from pathlib import Path

from battlesync.config import Config
from battlesync.server import SyncServer


# Configure logging
logging.basicConfig(
	level=logging.INFO,
	format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "configs" / "server_config.yaml"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def build_server(args: argparse.Namespace) -> SyncServer:
	"""
	Build a server from the config file plus command line overrides.

	Args:
		args: Parsed arguments.

	Returns:
		SyncServer: Configured, not yet started server.
	"""
	config = Config.from_file(str(args.config))
	if args.host is not None:
		config.set("network.host", args.host)
	if args.port is not None:
		config.set("network.port", args.port)
	if args.tick_rate is not None:
		config.set("server.tick_rate", args.tick_rate)

	return SyncServer(
		table_config=config.session_table_config(),
		config=config.server_config(),
	)


def resolve_log_level(args: argparse.Namespace) -> int:
	"""Logging level from --log-level, with -v forcing DEBUG."""
	if args.verbose:
		return logging.DEBUG
	return getattr(logging, args.log_level)


def setup_signal_handlers(server: SyncServer) -> None:
	"""
	Set up signal handlers for graceful shutdown.

	Args:
		server: Server instance to shut down.
	"""
	def signal_handler(signum, frame):
		logger.info(f"Received signal {signum}")
		server.request_stop()

	signal.signal(signal.SIGINT, signal_handler)
	signal.signal(signal.SIGTERM, signal_handler)


def parse_args() -> argparse.Namespace:
	"""
	Parse command line arguments.

	Returns:
		Namespace: Parsed arguments.
	"""
	parser = argparse.ArgumentParser(
		description="Run the battlesync session synchronization server"
	)

	parser.add_argument(
		"--config",
		type=Path,
		default=DEFAULT_CONFIG_PATH,
		help="Path to server config YAML file",
	)

	parser.add_argument("--host", type=str, default=None, help="Override bind address")
	parser.add_argument("--port", type=int, default=None, help="Override listening port")
	parser.add_argument("--tick-rate", type=float, default=None, help="Override ticks per second")

	parser.add_argument(
		"--log-level",
		type=str.upper,
		choices=LOG_LEVELS,
		default="INFO",
		help="Logging level",
	)

	parser.add_argument(
		"--verbose",
		"-v",
		action="store_true",
		help="Enable verbose logging (same as --log-level DEBUG)",
	)

	return parser.parse_args()


def main() -> None:
	"""Main entry point."""
	args = parse_args()

	logging.getLogger().setLevel(resolve_log_level(args))

	server = build_server(args)
	setup_signal_handlers(server)

	server.start()
	try:
		server.run()
	finally:
		server.stop()


if __name__ == "__main__":
	main()
