"""
Run orchestration: enumerate -> (group | resolve/read/write) -> report.

Everything runs on one thread, partition after partition and record after
record, so the live label read by the mutator is never raced by another
worker touching the same file. A stop request is honoured between records
and before the next index page is fetched; outcomes recorded before it stay
in the report.
"""
from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from label_migrator.enumerator import Enumerator, PartitionStats
from label_migrator.models import (
    PARTITION_ORDER,
    CanonicalRecord,
    MigrationOutcome,
    OutcomeAction,
    OutcomeStatus,
    Partition,
    RunTally,
)
from label_migrator.mutator import Mutator
from label_migrator.reporting import format_audit_line
from label_migrator.resolver import storage_location

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationGroup:
    storage_location: str
    partition: Partition
    file_count: int

    def as_row(self) -> dict:
        return {
            "storageLocation": self.storage_location,
            "partition": self.partition.value,
            "fileCount": self.file_count,
        }


@dataclass
class DiscoveryReport:
    label: str
    records: List[CanonicalRecord] = field(default_factory=list)
    locations: List[LocationGroup] = field(default_factory=list)
    partition_stats: Dict[Partition, PartitionStats] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def tally(self) -> RunTally:
        return RunTally.fold(len(self.records), [])

    def file_rows(self) -> List[dict]:
        return [
            {
                "fileName": r.file_name,
                "partition": r.partition.value,
                "locationRef": r.location_ref,
                "storageLocation": storage_location(r),
                "lastModified": r.last_modified.isoformat() if r.last_modified else "",
                "author": r.author or "",
            }
            for r in self.records
        ]


@dataclass
class MigrationReport:
    label: str
    dry_run: bool
    found: int = 0
    outcomes: List[MigrationOutcome] = field(default_factory=list)
    partition_stats: Dict[Partition, PartitionStats] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def tally(self) -> RunTally:
        return RunTally.fold(self.found, self.outcomes)

    def failures(self) -> List[MigrationOutcome]:
        return [o for o in self.outcomes if o.action is OutcomeAction.FAILED]


def group_by_location(records: Sequence[CanonicalRecord]) -> List[LocationGroup]:
    counts = Counter((storage_location(r), r.partition) for r in records)
    groups = [LocationGroup(loc, partition, n) for (loc, partition), n in counts.items()]
    order = {p: i for i, p in enumerate(PARTITION_ORDER)}
    return sorted(groups, key=lambda g: (-g.file_count, order[g.partition], g.storage_location))


class MigrationCoordinator:
    """Owns the outcome list of a run; no other component appends to it."""

    def __init__(self,
                 enumerator: Enumerator,
                 mutator: Optional[Mutator] = None,
                 *,
                 audit: Optional[Callable[[str], None]] = None,
                 record_sink: Optional[Callable[[MigrationOutcome], None]] = None,
                 stop_event: Optional[threading.Event] = None,
                 max_records: Optional[int] = None):
        self.enumerator = enumerator
        self.mutator = mutator
        self.audit = audit
        self.record_sink = record_sink
        self.stop_event = stop_event or threading.Event()
        self.max_records = max_records

    def _stop_requested(self, count: int) -> bool:
        if self.stop_event.is_set():
            logger.warning("Stop requested; ending run after %d records", count)
            return True
        return False

    def _limit_reached(self, count: int) -> bool:
        if self.max_records is not None and count >= self.max_records:
            logger.info("Reached max_records=%d; ending run", self.max_records)
            return True
        return False

    def discover(self, label: str, partitions: Sequence[Partition] = PARTITION_ORDER) -> DiscoveryReport:
        """Enumerate and group by storage location. No Graph call is made."""
        report = DiscoveryReport(label=label)
        records = self.enumerator.enumerate(label, partitions, stop_event=self.stop_event)
        try:
            for record in records:
                if self._stop_requested(len(report.records)):
                    report.cancelled = True
                    break
                report.records.append(record)
                if self._limit_reached(len(report.records)):
                    break
        finally:
            records.close()
        if self.stop_event.is_set():
            report.cancelled = True
        report.locations = group_by_location(report.records)
        report.partition_stats = dict(self.enumerator.stats)
        logger.info("Discovery found %d files in %d locations", len(report.records), len(report.locations))
        return report

    def migrate(self, label: str, partitions: Sequence[Partition] = PARTITION_ORDER) -> MigrationReport:
        if self.mutator is None:
            raise ValueError("A mutator is required to migrate")
        report = MigrationReport(label=label, dry_run=self.mutator.dry_run)
        records = self.enumerator.enumerate(label, partitions, stop_event=self.stop_event)
        try:
            for record in records:
                if self._stop_requested(len(report.outcomes)):
                    report.cancelled = True
                    break
                report.found += 1
                self._record(report, self.mutator.process(record))
                if self._limit_reached(len(report.outcomes)):
                    break
        finally:
            records.close()
        if self.stop_event.is_set():
            report.cancelled = True
        report.partition_stats = dict(self.enumerator.stats)
        if not report.outcomes:
            logger.info("No labelled files found for %r; nothing to do", label)
        return report

    def _record(self, report: MigrationReport, outcome: MigrationOutcome) -> None:
        report.outcomes.append(outcome)
        record = outcome.record
        if outcome.action is OutcomeAction.FAILED:
            logger.warning("%s %s (%s): %s", outcome.status.value, record.file_name,
                           outcome.item_url, outcome.error_detail)
        elif outcome.status is OutcomeStatus.SUCCESS:
            logger.info("Relabelled %s (%s)", record.file_name, outcome.item_url)
        else:
            logger.debug("%s %s", outcome.status.value, record.file_name)
        if self.audit is not None:
            self.audit(format_audit_line(outcome))
        if self.record_sink is not None:
            self.record_sink(outcome)
