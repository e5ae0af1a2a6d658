"""In-memory structures derived from one fetched batch."""

from dataclasses import dataclass, field
from typing import List, Optional

from dispatcher.domain.models import Network, NotificationQueueEntry, Recipient


@dataclass
class DispatchGroup:
    """Entries sharing recipient, network and notification type.

    Attributes:
        key: ``{recipient_id}_{network_id}_{type}``
        recipient: Joined recipient (always has an email)
        network: Joined network, if any
        notification_type: Type shared by every entry
        entries: Members in the order they were read
    """

    key: str
    recipient: Recipient
    network: Optional[Network]
    notification_type: str
    entries: List[NotificationQueueEntry] = field(default_factory=list)

    @property
    def entry_ids(self) -> List[str]:
        return [entry.id for entry in self.entries]

    @property
    def network_name(self) -> Optional[str]:
        return self.network.name if self.network else None

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class SenderBucket:
    """Direct messages of one group that come from the same sender.

    ``sender_key`` is the metadata ``senderId`` when present, otherwise the
    raw ``senderName`` (or an empty string when neither is set).
    """

    sender_key: str
    sender_name: Optional[str]
    entries: List[NotificationQueueEntry] = field(default_factory=list)


@dataclass
class DispatchUnit:
    """Exactly one outbound email: a whole group or one sender bucket of it."""

    group: DispatchGroup
    entries: List[NotificationQueueEntry]
    sender_name: Optional[str] = None

    @property
    def notification_type(self) -> str:
        return self.group.notification_type

    @property
    def entry_ids(self) -> List[str]:
        return [entry.id for entry in self.entries]


@dataclass
class GroupingResult:
    """Output of grouping a batch.

    Attributes:
        groups: Groups in first-seen order
        skipped: Entries left out because the recipient has no email
    """

    groups: List[DispatchGroup] = field(default_factory=list)
    skipped: List[NotificationQueueEntry] = field(default_factory=list)

    @property
    def grouped_count(self) -> int:
        return sum(len(group) for group in self.groups)
