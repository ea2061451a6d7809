"""
Realtime Manager Entry Point

Composition root: builds the change-feed transport and the channel
registry, starts the idle sweep (and the monitor when enabled), listens to
the tables named on the command line and logs every change until SIGINT or
SIGTERM, then tears every channel down.

Usage (from server/):
    python -m realtime_manager.main requests messages
    python -m realtime_manager.main requests --event INSERT --filter emergency=eq.true
    python -m realtime_manager.main requests --memory
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from dotenv import load_dotenv

# Configure logging before importing config (which may fail)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Log realtime row changes")
    parser.add_argument("tables", nargs="+", help="Tables to listen to")
    parser.add_argument("--schema", default="public")
    parser.add_argument("--event", default="*", choices=["*", "INSERT", "UPDATE", "DELETE"])
    parser.add_argument("--filter", default=None, help="Row filter, e.g. emergency=eq.true")
    parser.add_argument("--memory", action="store_true", help="Use the in-memory feed")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    from change_feed import ChangePayload, InMemoryChangeFeed, RedisChangeFeed
    from realtime_manager.config import load_settings
    from realtime_manager.monitor import ConnectionMonitor
    from realtime_manager.registry import ChannelRegistry
    from realtime_manager.subscription import Subscription

    args = _parse_args(argv)
    settings = load_settings()

    if args.memory:
        transport = InMemoryChangeFeed()
        redis_feed = None
    else:
        redis_feed = RedisChangeFeed(settings.redis.url)
        transport = redis_feed

    registry = ChannelRegistry.from_config(transport, settings.registry)
    registry.start()

    monitor = None
    if settings.monitor.enabled:
        monitor = ConnectionMonitor(
            registry,
            interval=settings.monitor.interval_ms / 1000,
            warn_threshold=settings.monitor.warn_threshold,
        )
        monitor.start()

    def log_change(payload: ChangePayload) -> None:
        logger.info(
            "%s %s.%s",
            payload.event_type.value,
            payload.schema,
            payload.table,
            extra={"record": payload.record, "commit_timestamp": payload.commit_timestamp},
        )

    subscriptions = []
    for table in args.tables:
        subscription = Subscription(
            registry,
            {"table": table, "schema": args.schema, "event": args.event, "filter": args.filter},
            log_change,
        )
        if subscription.open():
            subscriptions.append(subscription)
        else:
            logger.warning("Not listening to %s: channel limit reached", table)

    logger.info(
        "Listening",
        extra={"channels": registry.get_active_channels(), "transport": type(transport).__name__},
    )

    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await shutdown_event.wait()
    finally:
        logger.info("Shutting down...")

        if monitor is not None:
            await monitor.stop()

        for subscription in subscriptions:
            subscription.close()
        registry.destroy_all()

        if redis_feed is not None:
            await redis_feed.close()


if __name__ == "__main__":
    load_dotenv()

    from realtime_manager.config import ConfigurationError, load_settings

    try:
        load_settings()
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        raise SystemExit(1)

    asyncio.run(main())
