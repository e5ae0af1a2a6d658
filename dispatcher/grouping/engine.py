"""Partition a fetched batch into dispatch groups and units."""

from typing import Dict, Iterable, List

from dispatcher.domain.models import NotificationQueueEntry, NotificationType
from dispatcher.logging import get_logger

from .models import DispatchGroup, DispatchUnit, GroupingResult, SenderBucket

logger = get_logger(__name__, component="grouping")


def group_entries(entries: Iterable[NotificationQueueEntry]) -> GroupingResult:
    """Group entries by ``{recipient}_{network}_{type}``.

    Entries whose recipient has no email are returned in ``skipped`` and
    otherwise untouched. Groups keep the order in which their key was first
    seen; there is no priority ordering.
    """
    result = GroupingResult()
    groups: Dict[str, DispatchGroup] = {}

    for entry in entries:
        if entry.recipient is None or not entry.recipient.has_email:
            logger.info(
                f"Skipping notification {entry.id} - no email",
                extra={
                    "event": "grouping.entry.skipped",
                    "entry_id": entry.id,
                    "recipient_id": entry.recipient_id,
                    "reason": "missing_email",
                },
            )
            result.skipped.append(entry)
            continue

        key = entry.group_key
        group = groups.get(key)
        if group is None:
            group = DispatchGroup(
                key=key,
                recipient=entry.recipient,
                network=entry.network,
                notification_type=entry.notification_type,
            )
            groups[key] = group
        group.entries.append(entry)

    result.groups = list(groups.values())

    logger.debug(
        f"Grouped {result.grouped_count} entries into {len(result.groups)} groups",
        extra={
            "event": "grouping.completed",
            "group_count": len(result.groups),
            "skipped_count": len(result.skipped),
        },
    )
    return result


def split_by_sender(group: DispatchGroup) -> List[SenderBucket]:
    """Bucket a group's entries by sender identity.

    Keys on ``senderId`` when present, else on the raw ``senderName``. Two
    senders sharing a display name and lacking an id end up in one bucket.
    """
    buckets: Dict[str, SenderBucket] = {}

    for entry in group.entries:
        metadata = entry.metadata_dict()
        sender_id = metadata.get("senderId")
        sender_name = metadata.get("senderName")
        if not isinstance(sender_name, str):
            sender_name = None

        if sender_id not in (None, ""):
            key = f"id:{sender_id}"
        else:
            key = f"name:{sender_name or ''}"

        bucket = buckets.get(key)
        if bucket is None:
            bucket = SenderBucket(sender_key=key, sender_name=sender_name)
            buckets[key] = bucket
        elif bucket.sender_name is None and sender_name:
            bucket.sender_name = sender_name
        bucket.entries.append(entry)

    return list(buckets.values())


def dispatch_units(group: DispatchGroup) -> List[DispatchUnit]:
    """One unit per sender bucket for multi-entry DM groups, one per group otherwise."""
    if group.notification_type == NotificationType.DIRECT_MESSAGE.value and len(group) > 1:
        return [
            DispatchUnit(group=group, entries=list(bucket.entries), sender_name=bucket.sender_name)
            for bucket in split_by_sender(group)
        ]

    return [
        DispatchUnit(
            group=group,
            entries=list(group.entries),
            sender_name=group.entries[0].actor_name() if group.entries else None,
        )
    ]
