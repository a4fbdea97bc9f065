"""
Per-record read-verify-write of the sensitivity label.

Gates run in order and the first failing one decides the outcome:
type -> resolve -> read -> already-current -> write (or preview).
The index can be days behind, so the live label read right before the write
is the only value trusted.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional, Protocol

from label_migrator.config import DEFAULT_EXTENSIONS, DEFAULT_JUSTIFICATION
from label_migrator.errors import ReadError, ResolveError, WriteError
from label_migrator.models import (
    CanonicalRecord,
    MigrationOutcome,
    OutcomeAction,
    OutcomeStatus,
)
from label_migrator.resolver import Resolver, item_location

logger = logging.getLogger(__name__)


class LabelStore(Protocol):
    def get_current_label_id(self, drive_id: str, item_id: str) -> Optional[str]:
        ...

    def assign_sensitivity_label(self, drive_id: str, item_id: str, label_id: str,
                                 justification: str) -> Optional[str]:
        ...


class Mutator:
    def __init__(self,
                 resolver: Resolver,
                 labels: LabelStore,
                 target_label_id: str,
                 *,
                 justification: str = DEFAULT_JUSTIFICATION,
                 supported_extensions: Iterable[str] = DEFAULT_EXTENSIONS,
                 dry_run: bool = True,
                 delay_seconds: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        if not target_label_id:
            raise ValueError("target_label_id is required")
        if delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative")
        self.resolver = resolver
        self.labels = labels
        self.target_label_id = target_label_id
        self.justification = justification
        self.supported_extensions = frozenset(ext.lower() for ext in supported_extensions)
        self.dry_run = dry_run
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    def process(self, record: CanonicalRecord) -> MigrationOutcome:
        if record.extension not in self.supported_extensions:
            return MigrationOutcome(record, OutcomeAction.SKIPPED, OutcomeStatus.UNSUPPORTED_TYPE,
                                    error_detail=f"Unsupported file type {record.extension or '(none)'}")

        url = item_location(record)
        try:
            handle = self.resolver.resolve(url)
        except ResolveError as exc:
            return MigrationOutcome(record, OutcomeAction.FAILED, OutcomeStatus.RESOLVE_ERROR,
                                    error_detail=str(exc), item_url=url)

        try:
            current = self.labels.get_current_label_id(handle.store_id, handle.item_id)
        except Exception as exc:
            error = ReadError(f"Could not read current label: {exc}")
            return MigrationOutcome(record, OutcomeAction.FAILED, OutcomeStatus.READ_ERROR,
                                    error_detail=str(error), item_url=url, handle=handle)

        if current is not None and current.lower() == self.target_label_id.lower():
            return MigrationOutcome(record, OutcomeAction.SKIPPED, OutcomeStatus.ALREADY_UPDATED,
                                    item_url=url, handle=handle, previous_label_id=current)

        if self.dry_run:
            return MigrationOutcome(record, OutcomeAction.NONE, OutcomeStatus.WOULD_UPDATE,
                                    item_url=url, handle=handle, previous_label_id=current)

        try:
            self.labels.assign_sensitivity_label(handle.store_id, handle.item_id,
                                                 self.target_label_id, self.justification)
            outcome = MigrationOutcome(record, OutcomeAction.REPLACE, OutcomeStatus.SUCCESS,
                                       item_url=url, handle=handle, previous_label_id=current)
        except Exception as exc:
            # licensing, permission and throttling errors all land here alike
            error = WriteError(str(exc))
            outcome = MigrationOutcome(record, OutcomeAction.FAILED, OutcomeStatus.FAILED,
                                       error_detail=str(error), item_url=url, handle=handle,
                                       previous_label_id=current)
        finally:
            if self.delay_seconds:
                self._sleep(self.delay_seconds)
        return outcome
