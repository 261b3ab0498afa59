"""Domain layer - 外部依存なしのドメインモデルとインターフェース定義"""

from dunbar.domain.errors import (
    ConfigError,
    ConnectivityError,
    ContactLimitError,
    DunbarError,
    NotFoundError,
    SnapshotCorruptError,
    ValidationError,
)
from dunbar.domain.models import (
    Address,
    ChangeType,
    Communication,
    CommunicationType,
    Contact,
    ContactCategory,
    ContactStats,
    ContactStatus,
    MaritalStatus,
    MirrorState,
    PendingChange,
    Reminder,
)
from dunbar.domain.ports import (
    ConnectivityProbe,
    ContactStore,
    Notifier,
    SnapshotStore,
)

__all__ = [
    # Models
    "Address",
    "ChangeType",
    "Communication",
    "CommunicationType",
    "Contact",
    "ContactCategory",
    "ContactStats",
    "ContactStatus",
    "MaritalStatus",
    "MirrorState",
    "PendingChange",
    "Reminder",
    # Errors
    "DunbarError",
    "ConnectivityError",
    "ValidationError",
    "ContactLimitError",
    "NotFoundError",
    "SnapshotCorruptError",
    "ConfigError",
    # Ports
    "ContactStore",
    "ConnectivityProbe",
    "SnapshotStore",
    "Notifier",
]
