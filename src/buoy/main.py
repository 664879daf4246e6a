import argparse
import logging
import signal
import threading
from typing import List, Optional

from .cache import RecordCache
from .config.config_parser import (
    get_cache_max_age,
    normalize_listen_config,
    normalize_upstream_config,
    normalize_webserver_config,
    parse_config_file,
)
from .config.logging_config import init_logging
from .errors import StoreError
from .servers.dispatcher import QueryDispatcher
from .servers.udp_server import DNSServer
from .servers.upstream import UpstreamResolver
from .servers.webserver import start_webserver
from .stores import load_record_store


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the buoy DNS server.
    Parses arguments, loads configuration, opens the record store, and serves
    until a termination signal arrives.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code: 0 on SIGHUP or Ctrl-C, 2 on SIGTERM/SIGINT, 1 on
        configuration or startup errors.

    Example use:
        CLI:
            PYTHONPATH=src python -m buoy --config config/config.yaml -v PORT=5353
    """
    parser = argparse.ArgumentParser(description="Caching DNS forwarder")
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config")
    parser.add_argument(
        "-v",
        "--var",
        action="append",
        default=[],
        metavar="KEY=YAML",
        help="Override a config variable (repeatable); value is parsed as YAML",
    )
    args = parser.parse_args(argv)

    try:
        cfg = parse_config_file(args.config, cli_vars=args.var)
        listen_host, listen_port = normalize_listen_config(cfg)
        upstream_host, upstream_port = normalize_upstream_config(cfg)
        web_cfg = normalize_webserver_config(cfg)
        max_age = get_cache_max_age(cfg)
    except (OSError, ValueError) as exc:
        print(str(exc))
        return 1

    # Initialize logging before any other operations
    init_logging(cfg.get("logging"))
    logger = logging.getLogger("buoy.main")
    logger.info("Loaded config from %s", args.config)

    try:
        store = load_record_store(cfg.get("store"))
    except (KeyError, TypeError, ValueError, OSError, StoreError) as exc:
        logger.error("Failed to open record store: %s", exc)
        return 1
    logger.info("Using record store %s", store.__class__.__name__)

    cache = RecordCache(store, max_age=max_age)
    resolver = UpstreamResolver(upstream_host, upstream_port)
    dispatcher = QueryDispatcher(cache, resolver)
    logger.info("Forwarding misses to %s", resolver.address)

    exit_code = 0
    shutdown_event = threading.Event()

    def _request_shutdown(reason: str, code: int) -> None:
        nonlocal exit_code
        if shutdown_event.is_set():
            return
        exit_code = code
        shutdown_event.set()
        logger.info("Received %s, initiating shutdown (exit code=%d)", reason, code)

    def _sighup_handler(_signum, _frame):
        _request_shutdown("SIGHUP", 0)

    def _sigterm_handler(_signum, _frame):
        _request_shutdown("SIGTERM", 2)

    def _sigint_handler(_signum, _frame):
        _request_shutdown("SIGINT", 2)

    for signame, handler in (
        ("SIGHUP", _sighup_handler),
        ("SIGTERM", _sigterm_handler),
        ("SIGINT", _sigint_handler),
    ):
        signum = getattr(signal, signame, None)
        if signum is None:
            continue
        try:
            signal.signal(signum, handler)
        except ValueError:
            # Not the main thread of the main interpreter.
            logger.warning("Could not install %s handler", signame)

    server: Optional[DNSServer] = None
    udp_thread: Optional[threading.Thread] = None
    web_handle = None

    try:
        try:
            server = DNSServer(listen_host, listen_port, dispatcher)
        except OSError as exc:
            logger.error("Failed to bind %s:%d: %s", listen_host, listen_port, exc)
            return 1

        udp_thread = threading.Thread(
            target=server.serve_forever, name="buoy-udp", daemon=True
        )
        udp_thread.start()
        logger.info(
            "Serving DNS on %s:%d", server.server_address[0], server.server_address[1]
        )

        try:
            web_handle = start_webserver(cache, web_cfg)
        except Exception as e:  # pragma: no cover
            logger.error("Failed to start webserver: %s", e)
            return 1

        logger.info("Startup Completed")

        try:
            while not shutdown_event.is_set():
                if not udp_thread.is_alive():
                    logger.error("UDP server thread exited unexpectedly")
                    exit_code = 1
                    break
                shutdown_event.wait(1.0)
        except KeyboardInterrupt:
            logger.info("Received interrupt, shutting down")
            if not shutdown_event.is_set():
                shutdown_event.set()
                exit_code = 0
    finally:
        # Stop accepting datagrams first so no query touches a closed store.
        if server is not None:
            server.stop()
        if udp_thread is not None:
            udp_thread.join(timeout=5.0)
        if web_handle is not None:
            logger.info("Stopping webserver")
            web_handle.stop()
        try:
            store.close()
        except Exception:
            logger.exception("Error while closing record store")

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover
