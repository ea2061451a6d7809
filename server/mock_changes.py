"""
Mock change feed for exercising the realtime manager without a database.

Publishes synthetic row changes (requests, trips, messages, matches) to the
Redis topics read by RedisChangeFeed at realistic intervals.

Usage (from server/):
    python mock_changes.py --redis-url redis://localhost:6379/0
    python mock_changes.py --interval 0.2 --count 50
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import random
import uuid
from datetime import datetime, timezone
from typing import Any

from change_feed import ChangeEvent, ChangePayload, ChangePublisher, PublisherError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

CITIES = ["Lisbon", "Nassau", "Tortola", "Grenada", "Antigua", "St Lucia", "Panama City"]
STATUSES = ["open", "matched", "in_transit", "delivered", "cancelled"]


def _request_row() -> dict[str, Any]:
    return {
        "id": uuid.uuid4().hex[:12],
        "title": random.choice(["Watermaker membrane", "Autopilot pump", "Outboard impeller", "Chartplotter"]),
        "from_location": random.choice(CITIES),
        "to_location": random.choice(CITIES),
        "max_reward": random.choice([20, 50, 80, 120, 200]),
        "emergency": random.random() < 0.2,
        "status": random.choice(STATUSES),
    }


def _trip_row() -> dict[str, Any]:
    return {
        "id": uuid.uuid4().hex[:12],
        "type": random.choice(["plane", "boat"]),
        "from_location": random.choice(CITIES),
        "to_location": random.choice(CITIES),
        "spare_kg": random.randint(1, 30),
        "status": random.choice(["active", "completed"]),
    }


def _message_row() -> dict[str, Any]:
    return {
        "id": uuid.uuid4().hex[:12],
        "match_id": f"match-{random.randint(1, 5)}",
        "body": random.choice(["On my way", "Landed", "Can you meet at the marina?", "Thanks!"]),
    }


def _match_row() -> dict[str, Any]:
    return {
        "id": f"match-{random.randint(1, 5)}",
        "status": random.choice(["pending", "chatting", "escrow_paid", "delivered", "completed"]),
    }


ROW_FACTORIES = {
    "requests": _request_row,
    "trips": _trip_row,
    "messages": _message_row,
    "matches": _match_row,
}


def make_change(table: str | None = None) -> ChangePayload:
    """Build one random change for table (or a random table)."""
    table = table or random.choice(list(ROW_FACTORIES))
    row = ROW_FACTORIES[table]()
    event = random.choices(
        [ChangeEvent.INSERT, ChangeEvent.UPDATE, ChangeEvent.DELETE],
        weights=[5, 4, 1],
    )[0]
    return ChangePayload(
        schema="public",
        table=table,
        event_type=event,
        new={} if event is ChangeEvent.DELETE else row,
        old={"id": row["id"]} if event is not ChangeEvent.INSERT else {},
        commit_timestamp=datetime.now(timezone.utc).isoformat(),
    )


async def run_mock_changes(
    publisher: ChangePublisher,
    *,
    interval_range: tuple[float, float] = (0.5, 3.0),
    count: int | None = None,
) -> int:
    """Publish random changes until count is reached (forever if None)."""
    published = 0
    while count is None or published < count:
        payload = make_change()
        try:
            deliveries = await publisher.publish(payload)
        except PublisherError as e:
            logger.error(f"Publish failed: {e}")
        else:
            logger.info(
                f"{payload.event_type.value} {payload.table} -> {deliveries} subscriber(s)",
                extra={"record": payload.record},
            )
        published += 1
        await asyncio.sleep(random.uniform(*interval_range))
    return published


async def main() -> None:
    parser = argparse.ArgumentParser(description="Publish synthetic row changes to Redis")
    parser.add_argument("--redis-url", default="redis://localhost:6379/0")
    parser.add_argument("--interval", type=float, default=None,
                        help="Fixed delay between changes (default: random 0.5–3s)")
    parser.add_argument("--count", type=int, default=None)
    args = parser.parse_args()

    interval_range = (args.interval, args.interval) if args.interval is not None else (0.5, 3.0)
    async with ChangePublisher(args.redis_url) as publisher:
        await run_mock_changes(publisher, interval_range=interval_range, count=args.count)


if __name__ == "__main__":
    asyncio.run(main())
