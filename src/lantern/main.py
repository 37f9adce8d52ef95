from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import List

from .config import init_logging, log_config_summary, parse_config_file
from .querylog import BaseQueryLog, FileQueryLog, NullQueryLog
from .resolver import Resolver
from .servers.udp_server import DNSServer
from .zone import RecordStore, ZoneLoadError


def _open_query_log(path: str | None, enabled: bool) -> BaseQueryLog:
    """
    Build the query-log sink selected by the settings.

    Inputs:
      - path: query_log_file setting
      - enabled: query_logging setting
    Outputs:
      - BaseQueryLog: FileQueryLog when enabled, otherwise NullQueryLog

    Raises OSError when the log file cannot be opened.
    """
    if not enabled or not path:
        return NullQueryLog()
    return FileQueryLog(path)


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the DNS server.
    Parses arguments, loads settings and the zone, and serves until stopped.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code.

    Example use:
        CLI:
            lantern --config settings.yaml
    """
    parser = argparse.ArgumentParser(
        description="Authoritative DNS server with optional forwarding"
    )
    parser.add_argument(
        "--config", default="settings.yaml", help="Path to YAML settings file"
    )
    args = parser.parse_args(argv)

    try:
        cfg = parse_config_file(args.config)
    except (OSError, ValueError) as exc:
        print(str(exc))
        return 1

    # Initialize logging before any other operations
    init_logging(cfg.logging)
    logger = logging.getLogger("lantern.main")
    logger.info("Loaded config from %s", args.config)
    log_config_summary(cfg)

    # The zone must be fully loaded before anything is served.
    try:
        store = RecordStore.from_file(cfg.zone_file, cfg.zone_file_format)
    except ZoneLoadError as exc:
        logger.error("Failed to load zone: %s", exc)
        return 1

    try:
        query_log = _open_query_log(cfg.query_log_file, cfg.query_logging)
    except OSError as exc:
        logger.error("Failed to open query log file %s: %s", cfg.query_log_file, exc)
        return 1

    try:
        resolver = Resolver(store, cfg.forwarding, query_log=query_log)

        try:
            server = DNSServer(cfg.host, cfg.port, resolver)
        except OSError as exc:
            logger.error("Failed to start server on %s:%d: %s", cfg.host, cfg.port, exc)
            return 1

        def _handle_sigterm(signum, frame):
            logger.info("Received signal %d, shutting down", signum)
            # shutdown() waits for serve_forever() to return, which runs on
            # this very thread; hand it off.
            threading.Thread(target=server.stop, daemon=True).start()

        try:
            signal.signal(signal.SIGTERM, _handle_sigterm)
        except ValueError:  # pragma: no cover - not on the main thread
            logger.debug("SIGTERM handler not installed (not on main thread)")

        logger.info("Starting DNS server on %s:%d", cfg.host, cfg.port)
        server.serve_forever()
        logger.info("DNS server stopped")
        return 0
    finally:
        query_log.close()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
