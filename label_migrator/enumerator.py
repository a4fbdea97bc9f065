"""
Lazy enumeration of labelled files across index partitions.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence

from label_migrator.content_explorer import IndexService
from label_migrator.errors import EnumerationError, LoopDetected
from label_migrator.models import PARTITION_ORDER, CanonicalRecord, PageCursor, Partition
from label_migrator.normalizer import normalize_row

logger = logging.getLogger(__name__)


@dataclass
class PartitionStats:
    pages: int = 0
    records: int = 0
    dropped: int = 0
    error: Optional[str] = None
    loop_detected: bool = False


@dataclass
class Enumerator:
    """Drives the index paging protocol for one label, one partition at a time.

    Each call to `enumerate` starts from the first page again. `stats` is reset
    per call and describes what the last enumeration saw.
    """

    index: IndexService
    page_size: int = 1000
    stats: Dict[Partition, PartitionStats] = field(default_factory=dict)

    def enumerate(self, label: str, partitions: Sequence[Partition] = PARTITION_ORDER,
                  stop_event: Optional[threading.Event] = None) -> Iterator[CanonicalRecord]:
        if not label or not label.strip():
            raise ValueError("label cannot be empty")
        if self.page_size < 1:
            raise ValueError("page_size must be positive")
        if not partitions:
            raise ValueError("at least one partition is required")
        for partition in partitions:
            if not isinstance(partition, Partition):
                raise ValueError(f"not a partition: {partition!r}")
        self.stats = {}
        return self._iterate(label, [p for p in PARTITION_ORDER if p in partitions], stop_event)

    def _iterate(self, label: str, partitions: List[Partition],
                 stop_event: Optional[threading.Event]) -> Iterator[CanonicalRecord]:
        for partition in partitions:
            if stop_event is not None and stop_event.is_set():
                return
            stats = self.stats[partition] = PartitionStats()
            logger.info("Enumerating label %r in %s", label, partition.value)
            yield from self._pages(label, partition, stats, stop_event)
            logger.info("%s: %d records over %d pages (%d rows dropped)",
                        partition.value, stats.records, stats.pages, stats.dropped)

    def _pages(self, label: str, partition: Partition, stats: PartitionStats,
               stop_event: Optional[threading.Event] = None) -> Iterator[CanonicalRecord]:
        cookie: Optional[str] = None
        while True:
            if stop_event is not None and stop_event.is_set():
                logger.info("Stop requested; not fetching page %d of %s", stats.pages + 1, partition.value)
                return
            try:
                page = self.index.fetch_page(label, partition, self.page_size, cookie)
            except Exception as exc:
                error = exc if isinstance(exc, EnumerationError) else EnumerationError(str(exc))
                stats.error = str(error)
                logger.error("Enumeration of %s stopped after %d pages: %s", partition.value, stats.pages, error)
                return
            if not page:
                return

            stats.pages += 1
            cursor = PageCursor.from_metadata(page[0])
            for row in page[1:]:
                try:
                    record = normalize_row(row, partition)
                except Exception as exc:
                    logger.warning("Dropping unreadable %s row on page %d: %s", partition.value, stats.pages, exc)
                    record = None
                if record is None:
                    stats.dropped += 1
                    continue
                stats.records += 1
                yield record

            if not cursor.has_more or not cursor.cookie:
                return
            if cursor.cookie == cookie:
                stats.loop_detected = True
                logger.warning("%s", LoopDetected(
                    f"{partition.value}: index returned the same page cookie twice; stopping after page {stats.pages}"))
                return
            cookie = cursor.cookie
