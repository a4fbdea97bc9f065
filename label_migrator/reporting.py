"""
Output sinks: CSV artifacts under the output directory and the audit line.
"""
from __future__ import annotations

import csv
import logging
import os
from datetime import datetime
from typing import Dict, Iterable, Optional, Sequence

from label_migrator.models import MigrationOutcome, RunTally

RESULT_FIELDS = [
    "fileName", "partition", "locationRef", "itemUrl", "storeId", "itemId",
    "previousLabelId", "action", "status", "errorDetail", "timestamp",
]
DISCOVERY_FILE_FIELDS = ["fileName", "partition", "locationRef", "storageLocation", "lastModified", "author"]
DISCOVERY_LOCATION_FIELDS = ["storageLocation", "partition", "fileCount"]


def timestamped_path(output_dir: str, prefix: str, stamp: Optional[str] = None) -> str:
    stamp = stamp or datetime.now().strftime("%Y%m%d_%H%M%S")
    return os.path.join(output_dir, f"{prefix}_{stamp}.csv")


class CsvRecordSink:
    """Append-only CSV writer. The header is written when the file is created."""

    def __init__(self, path: str, fieldnames: Sequence[str]):
        self.path = path
        self.fieldnames = list(fieldnames)
        self.rows_written = 0
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if not os.path.exists(path):
            with open(path, "w", newline="", encoding="utf-8") as f:
                csv.DictWriter(f, fieldnames=self.fieldnames).writeheader()

    def emit(self, row: Dict[str, object]) -> None:
        self.write_many([row])

    def write_many(self, rows: Iterable[Dict[str, object]]) -> None:
        rows = list(rows)
        if not rows:
            return
        with open(self.path, "a", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=self.fieldnames, extrasaction="ignore")
            writer.writerows(rows)
        self.rows_written += len(rows)

    def emit_outcome(self, outcome: MigrationOutcome) -> None:
        self.emit(outcome.as_row())


def format_audit_line(outcome: MigrationOutcome) -> str:
    record = outcome.record
    line = (f"{outcome.status.value} action={outcome.action.value} partition={record.partition.value} "
            f"file={record.file_name!r} location={outcome.item_url}")
    if outcome.previous_label_id:
        line += f" previous={outcome.previous_label_id}"
    if outcome.error_detail:
        line += f" detail={outcome.error_detail}"
    return line


class AuditTrail:
    """Audit sink: one line per processed record on the audit logger."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def __call__(self, line: str) -> None:
        self.logger.info(line)


def format_tally(tally: RunTally, title: str = "Summary") -> str:
    lines = [
        f"{title}:",
        f"  found:           {tally.found}",
        f"  processed:       {tally.processed}",
        f"  succeeded:       {tally.succeeded}",
        f"  would update:    {tally.would_update}",
        f"  skipped:         {tally.skipped} (already current: {tally.already_current})",
        f"  failed:          {tally.failed}",
    ]
    return "\n".join(lines)
