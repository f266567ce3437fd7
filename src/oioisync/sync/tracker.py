"""Change detection between the live snapshot and the last acknowledged one."""

import logging
import operator
from collections.abc import Callable, Hashable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Generic, Optional, TypeVar

from ..models.domain import ConnectorStatus, ConnectorStatusUpdate, TimestampedStatus

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class Diff(Generic[K, V]):
    """
    Result of comparing two id-keyed snapshots.

    ``to_push`` holds every entity that is new or differs from its
    acknowledged value. There is no delete set: entities missing from the
    live snapshot are only listed in ``vanished``; a removal has to travel
    as a soft-delete flag on the entity itself.
    """

    to_push: dict[K, V] = field(default_factory=dict)
    unchanged: list[K] = field(default_factory=list)
    vanished: list[K] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.to_push)


def diff(
    current: Mapping[K, V],
    acknowledged: Mapping[K, V],
    same: Callable[[V, V], bool] = operator.eq,
) -> Diff[K, V]:
    """Compare the live snapshot with the acknowledged one, preserving live order."""
    result: Diff[K, V] = Diff()
    for key, value in current.items():
        previous = acknowledged.get(key)
        if previous is not None and same(previous, value):
            result.unchanged.append(key)
        else:
            result.to_push[key] = value
    result.vanished = [key for key in acknowledged if key not in current]
    return result


def same_status(a: ConnectorStatus, b: ConnectorStatus) -> bool:
    return a.status is b.status


def status_updates(
    current: Mapping[str, ConnectorStatus],
    acknowledged: Mapping[str, ConnectorStatus],
    now: Optional[datetime] = None,
) -> list[ConnectorStatusUpdate]:
    """
    Turn a status diff into ordered ConnectorStatusUpdates.

    A connector seen for the first time is reported with its current status
    as both the old and the new value. Statuses without a timestamp are
    stamped with ``now``. A live status older than the acknowledged one is
    stale and dropped.
    """
    now = now or datetime.now(UTC)
    updates = []
    for connector_id, status in diff(current, acknowledged, same_status).to_push.items():
        new = TimestampedStatus(status.status, status.timestamp or now)
        previous = acknowledged.get(connector_id)
        old = TimestampedStatus(previous.status, previous.timestamp or new.timestamp) if previous else new
        if new.timestamp < old.timestamp:
            logger.warning(
                "Dropping stale status for connector %s (%s older than %s)",
                connector_id,
                new,
                old,
            )
            continue
        updates.append(ConnectorStatusUpdate(connector_id, old, new))
    return sorted(updates)
