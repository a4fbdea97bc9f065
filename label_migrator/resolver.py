"""
Location -> drive item resolution.

Graph can address any file by URL through the /shares endpoint, using the
"u!" + unpadded base64url encoding of the URL as the share id.
"""
from __future__ import annotations

import base64
import logging
import re
from typing import Any, Dict, Protocol
from urllib.parse import unquote, urlsplit

from label_migrator.errors import ResolveError
from label_migrator.models import NOT_AVAILABLE, CanonicalRecord, Partition, RemoteHandle

SHARE_TOKEN_PREFIX = "u!"

_SITE_ROOTS = {
    Partition.SHAREPOINT: re.compile(r"^(https?://[^/]+/(?:sites|teams)/[^/?#]+)", re.IGNORECASE),
    Partition.ONEDRIVE: re.compile(r"^(https?://[^/]+/personal/[^/?#]+)", re.IGNORECASE),
}

logger = logging.getLogger(__name__)


class SharedItemLookup(Protocol):
    def get_shared_drive_item(self, share_token: str) -> Dict[str, Any]:
        ...


def encode_share_token(url: str) -> str:
    encoded = base64.b64encode(url.encode("utf-8")).decode("ascii")
    return SHARE_TOKEN_PREFIX + encoded.rstrip("=").replace("/", "_").replace("+", "-")


def item_location(record: CanonicalRecord) -> str:
    """URL of the file itself.

    SharePoint rows usually carry the containing folder; append the file name
    unless the location already points at it.
    """
    location = record.location_ref
    if location == NOT_AVAILABLE:
        return location
    trimmed = location.rstrip("/")
    last = unquote(trimmed.rpartition("/")[2])
    if last.lower() == record.file_name.lower():
        return trimmed
    return f"{trimmed}/{record.file_name}"


def storage_location(record: CanonicalRecord) -> str:
    """Site a record lives in, used to group discovery output. No remote call."""
    location = record.location_ref
    if location == NOT_AVAILABLE:
        return location
    match = _SITE_ROOTS[record.partition].match(location)
    if match:
        return match.group(1)
    parts = urlsplit(location)
    if parts.scheme and parts.netloc:
        return f"{parts.scheme}://{parts.netloc}"
    return location


class Resolver:
    def __init__(self, client: SharedItemLookup):
        self.client = client

    def resolve(self, location_ref: str) -> RemoteHandle:
        """Resolve a file URL to its drive item. Every failure surfaces as ResolveError."""
        if not location_ref or location_ref == NOT_AVAILABLE:
            raise ResolveError("No location available for this record")
        if not urlsplit(location_ref).scheme.lower().startswith("http"):
            raise ResolveError(f"Not a URL: {location_ref}")
        try:
            item = self.client.get_shared_drive_item(encode_share_token(location_ref))
            handle = RemoteHandle(
                store_id=item["parentReference"]["driveId"],
                item_id=item["id"],
                display_name=item.get("name", ""),
            )
        except Exception as exc:
            logger.debug("Resolution of %s failed: %s", location_ref, exc)
            raise ResolveError(f"{location_ref}: {exc}") from exc
        return handle
