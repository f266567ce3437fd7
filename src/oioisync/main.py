"""Main entry point for the oioisync adapter."""

import sys
from pathlib import Path

# Add src directory to Python path when running directly (not as installed package)
if __package__ is None:
    src_dir = Path(__file__).parent.parent
    if str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))

import argparse
import asyncio
import logging

from prometheus_client import start_http_server

from oioisync import config
from oioisync.config import StreamSettings, SyncSettings
from oioisync.logging_utils import JSONFormatter, log_error
from oioisync.plugins import FluentdAuditPlugin, PluginManager, PrometheusMetricsPlugin
from oioisync.protocol import CPOClient
from oioisync.sync import JSONFileSnapshotProvider, StreamName, SyncScheduler


def setup_logging(level: str = "INFO", log_file: str | None = None):
    """Configure JSON logging for the application."""
    json_formatter = JSONFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(json_formatter)
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(json_formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = handlers

    # Suppress verbose logging from dependencies
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("fluent").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="oioisync - push charging stations, status and sessions to the OIOI v4 API"
    )
    parser.add_argument(
        "--hostname",
        default=config.OIOI_HOSTNAME,
        help=f"Partner API hostname (default: {config.OIOI_HOSTNAME})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=config.OIOI_PORT,
        help=f"Partner API port (default: {config.OIOI_PORT})",
    )
    parser.add_argument(
        "--scheme",
        default="https",
        choices=["https", "http"],
        help="Partner API scheme (default: https)",
    )
    parser.add_argument(
        "--url-prefix",
        default=config.OIOI_URL_PREFIX,
        help=f"Partner API path (default: {config.OIOI_URL_PREFIX})",
    )
    parser.add_argument(
        "--api-key",
        default=config.OIOI_API_KEY,
        help="Partner API key (default: $OIOI_API_KEY)",
    )
    parser.add_argument(
        "--partner-id",
        default=config.OIOI_PARTNER_ID,
        help="Default partner identifier (default: $OIOI_PARTNER_ID)",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=config.OIOI_REQUEST_TIMEOUT,
        help=f"Request timeout in seconds (default: {config.OIOI_REQUEST_TIMEOUT:g})",
    )
    parser.add_argument(
        "--snapshot",
        default=None,
        help="JSON file holding the local stations and charge detail records",
    )
    parser.add_argument(
        "--topology-interval",
        type=float,
        default=config.TOPOLOGY_INTERVAL,
        help=f"Seconds between station uploads (default: {config.TOPOLOGY_INTERVAL:g})",
    )
    parser.add_argument(
        "--status-interval",
        type=float,
        default=config.STATUS_INTERVAL,
        help=f"Seconds between connector status uploads (default: {config.STATUS_INTERVAL:g})",
    )
    parser.add_argument(
        "--sessions-interval",
        type=float,
        default=config.SESSIONS_INTERVAL,
        help=f"Seconds between session uploads (default: {config.SESSIONS_INTERVAL:g})",
    )
    parser.add_argument(
        "--disable-push-data",
        action="store_true",
        default=config.DISABLE_PUSH_DATA,
        help="Do not upload station data",
    )
    parser.add_argument(
        "--disable-push-status",
        action="store_true",
        default=config.DISABLE_PUSH_STATUS,
        help="Do not upload connector status",
    )
    parser.add_argument(
        "--disable-send-charge-detail-records",
        action="store_true",
        default=config.DISABLE_SEND_CHARGE_DETAIL_RECORDS,
        help="Do not upload charging sessions",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run every enabled stream once and exit",
    )
    parser.add_argument(
        "--verify-rfid",
        default=None,
        metavar="RFID",
        help="Verify a single RFID card with the partner, print the result and exit",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write JSON logs to this file (default: disabled)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Port for Prometheus metrics HTTP server (default: disabled)",
    )
    parser.add_argument(
        "--fluentd-endpoint",
        default=None,
        help="Fluentd endpoint in host:port format (e.g., localhost:24224). If provided, enables Fluentd audit logging.",
    )
    parser.add_argument(
        "--fluentd-tag",
        default="oioi",
        help="Tag prefix for Fluentd events (default: oioi)",
    )
    return parser


def parse_fluentd_endpoint(parser: argparse.ArgumentParser, endpoint: str) -> tuple[str, int]:
    if ":" not in endpoint:
        parser.error("--fluentd-endpoint must be in host:port format (e.g., localhost:24224)")
    host, port_str = endpoint.rsplit(":", 1)
    if not host:
        parser.error("--fluentd-endpoint host cannot be empty")
    try:
        return host, int(port_str)
    except ValueError:
        parser.error(f"Invalid port in --fluentd-endpoint: {endpoint}")


def create_plugins(args, fluentd_host: str | None, fluentd_port: int | None) -> PluginManager:
    plugins = PluginManager()

    if args.metrics_port:
        plugins.register(PrometheusMetricsPlugin())

    if args.fluentd_endpoint:
        plugins.register(
            FluentdAuditPlugin(
                tag_prefix=args.fluentd_tag,
                host=fluentd_host,
                port=fluentd_port,
                timeout=3.0,
            )
        )

    return plugins


async def main(argv: list[str] | None = None):
    """Main application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.api_key:
        parser.error("an API key is required (--api-key or $OIOI_API_KEY)")
    if not args.verify_rfid and not args.snapshot:
        parser.error("--snapshot is required unless --verify-rfid is given")

    fluentd_host = None
    fluentd_port = None
    if args.fluentd_endpoint:
        fluentd_host, fluentd_port = parse_fluentd_endpoint(parser, args.fluentd_endpoint)

    setup_logging(args.log_level, args.log_file)
    logger = logging.getLogger(__name__)

    logger.info(
        "System starting",
        extra={
            "event_type": "system_startup",
            "event_data": {
                "partner_api": f"{args.scheme}://{args.hostname}:{args.port}{args.url_prefix}",
                "snapshot": args.snapshot,
                "metrics_endpoint": f"http://0.0.0.0:{args.metrics_port}/metrics"
                if args.metrics_port
                else None,
                "fluentd_enabled": args.fluentd_endpoint is not None,
                "fluentd_endpoint": args.fluentd_endpoint,
            },
        },
    )

    if args.metrics_port:
        start_http_server(args.metrics_port)

    plugins = create_plugins(args, fluentd_host, fluentd_port)

    async with CPOClient(
        args.hostname,
        args.api_key,
        port=args.port,
        url_prefix=args.url_prefix,
        scheme=args.scheme,
        default_partner_id=args.partner_id,
        request_timeout=args.request_timeout,
        plugins=plugins,
    ) as client:
        if args.verify_rfid:
            result = await client.rfid_verify(args.verify_rfid)
            print(f"{result.code} {result.message} ({result.outcome.value})")
            return 0 if result.is_success else 1

        settings = SyncSettings(
            topology=StreamSettings(args.topology_interval, enabled=not args.disable_push_data),
            status=StreamSettings(args.status_interval, enabled=not args.disable_push_status),
            sessions=StreamSettings(
                args.sessions_interval, enabled=not args.disable_send_charge_detail_records
            ),
            request_timeout=args.request_timeout,
        )
        scheduler = SyncScheduler(client, JSONFileSnapshotProvider(args.snapshot), settings)

        if args.once:
            failed = False
            for stream in StreamName:
                report = await scheduler.trigger(stream)
                if report is not None and not report.success:
                    failed = True
            return 1 if failed else 0

        try:
            await scheduler.start()
            await asyncio.Future()  # Run forever
        except asyncio.CancelledError:
            logger.info(
                "System shutting down",
                extra={"event_type": "system_shutdown", "event_data": {"reason": "cancelled"}},
            )
        except Exception as e:
            log_error(logger, "scheduler_error", f"Scheduler error: {e}", exc_info=e)
            raise
        finally:
            await scheduler.stop()
    return 0


def run():
    """Entry point for console script."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nShutdown complete")
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
