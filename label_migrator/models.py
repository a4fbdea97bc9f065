"""
Data model for a label migration run.

Records come from the Content Explorer index, handles from Microsoft Graph,
and outcomes/tallies are what the coordinator accumulates and reports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

NOT_AVAILABLE = "N/A"


class Partition(str, Enum):
    """Index-service workload a record was enumerated from."""

    SHAREPOINT = "SharePoint"
    ONEDRIVE = "OneDrive"

    @classmethod
    def parse(cls, value: str) -> "Partition":
        key = value.strip().lower()
        aliases = {
            "sharepoint": cls.SHAREPOINT,
            "spo": cls.SHAREPOINT,
            "a": cls.SHAREPOINT,
            "onedrive": cls.ONEDRIVE,
            "odb": cls.ONEDRIVE,
            "b": cls.ONEDRIVE,
        }
        if key not in aliases:
            raise ValueError(f"Unknown partition: {value!r}")
        return aliases[key]


# Partitions are always processed in this order, whatever order was requested.
PARTITION_ORDER = (Partition.SHAREPOINT, Partition.ONEDRIVE)


class RunMode(str, Enum):
    DISCOVERY = "discovery"
    DRY_RUN = "dry_run"
    LIVE = "live"


class OutcomeAction(str, Enum):
    NONE = "None"
    REPLACE = "Replace"
    SKIPPED = "Skipped"
    FAILED = "Failed"


class OutcomeStatus(str, Enum):
    PENDING = "Pending"
    WOULD_UPDATE = "WouldUpdate"
    SUCCESS = "Success"
    FAILED = "Failed"
    UNSUPPORTED_TYPE = "UnsupportedType"
    RESOLVE_ERROR = "ResolveError"
    READ_ERROR = "ReadError"
    ALREADY_UPDATED = "AlreadyUpdated"


@dataclass(frozen=True)
class CanonicalRecord:
    """One labelled file as seen by the index."""

    file_name: str
    location_ref: str
    partition: Partition
    last_modified: Optional[datetime] = None
    author: Optional[str] = None

    @property
    def extension(self) -> str:
        _, dot, ext = self.file_name.rpartition(".")
        return f".{ext.lower()}" if dot else ""


@dataclass(frozen=True)
class PageCursor:
    """Continuation state returned as the first element of every index page."""

    has_more: bool
    cookie: Optional[str] = None

    @classmethod
    def from_metadata(cls, metadata: Any) -> "PageCursor":
        if not isinstance(metadata, Mapping):
            return cls(has_more=False)
        lowered = {str(k).lower(): v for k, v in metadata.items()}
        has_more = lowered.get("morepagesavailable", False)
        if isinstance(has_more, str):
            has_more = has_more.strip().lower() == "true"
        cookie = lowered.get("pagecookie")
        return cls(has_more=bool(has_more), cookie=str(cookie) if cookie else None)


@dataclass(frozen=True)
class RemoteHandle:
    store_id: str
    item_id: str
    display_name: str


@dataclass(frozen=True)
class MigrationOutcome:
    """Result of pushing one record through the mutator. Never revised once recorded."""

    record: CanonicalRecord
    action: OutcomeAction
    status: OutcomeStatus
    error_detail: Optional[str] = None
    item_url: str = NOT_AVAILABLE
    handle: Optional[RemoteHandle] = None
    previous_label_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_row(self) -> dict:
        return {
            "fileName": self.record.file_name,
            "partition": self.record.partition.value,
            "locationRef": self.record.location_ref,
            "itemUrl": self.item_url,
            "storeId": self.handle.store_id if self.handle else "",
            "itemId": self.handle.item_id if self.handle else "",
            "previousLabelId": self.previous_label_id or "",
            "action": self.action.value,
            "status": self.status.value,
            "errorDetail": self.error_detail or "",
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class RunTally:
    found: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    already_current: int = 0
    would_update: int = 0

    @classmethod
    def fold(cls, found: int, outcomes: Iterable[MigrationOutcome]) -> "RunTally":
        """Derive the counters from the recorded outcomes; nothing else updates them."""
        counts = {
            "processed": 0,
            "succeeded": 0,
            "failed": 0,
            "skipped": 0,
            "already_current": 0,
            "would_update": 0,
        }
        for outcome in outcomes:
            counts["processed"] += 1
            if outcome.status is OutcomeStatus.SUCCESS:
                counts["succeeded"] += 1
            elif outcome.status is OutcomeStatus.WOULD_UPDATE:
                counts["would_update"] += 1
            elif outcome.action is OutcomeAction.SKIPPED:
                counts["skipped"] += 1
                if outcome.status is OutcomeStatus.ALREADY_UPDATED:
                    counts["already_current"] += 1
            else:
                counts["failed"] += 1
        return cls(found=found, **counts)
