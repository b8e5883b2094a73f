"""
Event Bucket Tool
Grouping keys for the medication event log
"""

from datetime import datetime
from typing import Dict, Iterable, List, Tuple, TypeVar, Callable


T = TypeVar("T")

GroupKey = Tuple[int, datetime]


def floor_to_bucket(value: datetime, bucket_minutes: int = 15) -> datetime:
    """Round down to the start of the bucket (0/15/30/45 for 15-minute buckets)"""
    if bucket_minutes <= 0 or 60 % bucket_minutes:
        raise ValueError(f"bucket_minutes must divide an hour: {bucket_minutes}")
    minute = (value.minute // bucket_minutes) * bucket_minutes
    return value.replace(minute=minute, second=0, microsecond=0)


def hour_event_key(value: datetime) -> str:
    """Coarse correlation key for an event: 'YYYY-MM-DDTHH'"""
    return value.strftime("%Y-%m-%dT%H")


def group_key_label(key: GroupKey) -> str:
    patient_id, bucket_start = key
    return f"{patient_id}-{bucket_start.isoformat()}"


def group_by_bucket(
    items: Iterable[T],
    patient_of: Callable[[T], int],
    time_of: Callable[[T], datetime],
    bucket_minutes: int = 15
) -> Dict[GroupKey, List[T]]:
    """
    Group items by (patient, floored timestamp)

    The bucket start carries the full date, so two events at the same clock
    time on different days, or for different patients, never share a group.
    """
    groups: Dict[GroupKey, List[T]] = {}
    for item in items:
        key = (patient_of(item), floor_to_bucket(time_of(item), bucket_minutes))
        groups.setdefault(key, []).append(item)
    return groups
