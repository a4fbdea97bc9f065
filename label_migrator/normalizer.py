"""
Turn raw Content Explorer rows into CanonicalRecord values.

Export-ContentExplorerData does not use the same column names for every
workload (or every module version), so each attribute is looked up under a
list of candidate keys in priority order. Location falls back to any key that
looks like a URL/path column before settling on the "N/A" sentinel.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence
from urllib.parse import unquote, urlsplit

from label_migrator.models import NOT_AVAILABLE, CanonicalRecord, Partition

FILE_NAME_KEYS = ("FileName", "Name", "FileSourceName", "Title", "DocumentName")

LOCATION_KEYS = {
    Partition.SHAREPOINT: ("Location", "FileUrl", "SiteUrl", "Url", "Path"),
    Partition.ONEDRIVE: ("FileUrl", "Location", "Url", "OneDriveUrl", "Path"),
}

LAST_MODIFIED_KEYS = ("LastModifiedTime", "LastModified", "LastModifiedDate", "Modified", "TimeLastModified")
AUTHOR_KEYS = ("LastModifiedBy", "ModifiedBy", "Author", "CreatedBy", "Owner")

_LOCATION_TOKENS = re.compile(r"url|link|uri|path", re.IGNORECASE)
# ConvertTo-Json renders DateTime values as "/Date(1700000000000)/" on Windows PowerShell
_MS_JSON_DATE = re.compile(r"^/Date\((-?\d+)([+-]\d{4})?\)/$")


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    if not text or text.upper() == NOT_AVAILABLE:
        return None
    return text


def _first(row: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    lowered = {str(k).lower(): v for k, v in row.items()}
    for key in keys:
        value = _text(lowered.get(key.lower()))
        if value:
            return value
    return None


def _location_by_pattern(row: Mapping[str, Any]) -> Optional[str]:
    for key, value in row.items():
        if _LOCATION_TOKENS.search(str(key)):
            text = _text(value)
            if text:
                return text
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    text = _text(value)
    if not text:
        return None
    match = _MS_JSON_DATE.match(text)
    if match:
        try:
            return datetime.fromtimestamp(int(match.group(1)) / 1000.0, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in ("%m/%d/%Y %I:%M:%S %p", "%m/%d/%Y %H:%M:%S", "%d/%m/%Y %H:%M:%S"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _name_from_location(location: Optional[str]) -> Optional[str]:
    if not location:
        return None
    last = unquote(urlsplit(location).path.rstrip("/").rpartition("/")[2])
    return last if "." in last.strip(".") else None


def normalize_row(row: Any, partition: Partition) -> Optional[CanonicalRecord]:
    """Map one raw index row to a CanonicalRecord, or None when it has no usable file name."""
    if not isinstance(row, Mapping):
        return None
    location = _first(row, LOCATION_KEYS[partition]) or _location_by_pattern(row)
    file_name = _first(row, FILE_NAME_KEYS) or _name_from_location(location)
    if not file_name:
        return None
    return CanonicalRecord(
        file_name=file_name,
        location_ref=location or NOT_AVAILABLE,
        partition=partition,
        last_modified=parse_timestamp(_first(row, LAST_MODIFIED_KEYS)),
        author=_first(row, AUTHOR_KEYS),
    )
