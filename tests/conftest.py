from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional

import pytest

from label_migrator.errors import GraphRequestError
from label_migrator.models import Partition

TARGET = "11111111-2222-3333-4444-555555555555"
LEGACY = "99999999-8888-7777-6666-555555555555"
SITE = "https://contoso.sharepoint.com/sites/finance/Shared Documents"


class FakeIndex:
    """Serves scripted pages per partition and records every request."""

    def __init__(self, pages: Optional[Dict[Partition, List[Any]]] = None,
                 labels: Optional[Dict[str, dict]] = None) -> None:
        self._pages = {p: list(v) for p, v in (pages or {}).items()}
        self.labels = labels or {}
        self.calls: List[tuple] = []

    def fetch_page(self, label, partition, page_size, cursor=None):
        self.calls.append((label, partition, page_size, cursor))
        queue = self._pages.get(partition, [])
        if not queue:
            return None
        page = queue.pop(0)
        if isinstance(page, Exception):
            raise page
        return page

    def lookup_label(self, identity):
        return self.labels[identity]


def decode_share_token(token: str) -> str:
    body = token[2:].replace("-", "+").replace("_", "/")
    body += "=" * (-len(body) % 4)
    return base64.b64decode(body).decode("utf-8")


class FakeGraph:
    """In-memory drive: URL -> item, item -> current label. Writes update the label."""

    def __init__(self) -> None:
        self.items: Dict[str, dict] = {}
        self.labels: Dict[str, Optional[str]] = {}
        self.read_failures: Dict[str, Exception] = {}
        self.write_failures: Dict[str, Exception] = {}
        self.resolve_calls: List[str] = []
        self.read_calls: List[tuple] = []
        self.write_calls: List[tuple] = []

    def add_file(self, url: str, item_id: str, label_id: Optional[str] = None, drive_id: str = "b!drive") -> None:
        self.items[url] = {"id": item_id, "name": url.rsplit("/", 1)[-1], "parentReference": {"driveId": drive_id}}
        self.labels[item_id] = label_id

    def get_shared_drive_item(self, share_token: str) -> dict:
        url = decode_share_token(share_token)
        self.resolve_calls.append(url)
        if url not in self.items:
            raise GraphRequestError(404, "itemNotFound", "The resource could not be found.")
        return self.items[url]

    def get_current_label_id(self, drive_id: str, item_id: str) -> Optional[str]:
        self.read_calls.append((drive_id, item_id))
        if item_id in self.read_failures:
            raise self.read_failures[item_id]
        return self.labels.get(item_id)

    def assign_sensitivity_label(self, drive_id, item_id, label_id, justification):
        self.write_calls.append((drive_id, item_id, label_id, justification))
        if item_id in self.write_failures:
            raise self.write_failures[item_id]
        self.labels[item_id] = label_id
        return "https://graph.microsoft.com/v1.0/monitor/1"


def meta(more: bool = False, cookie: Optional[str] = None) -> dict:
    return {"TotalCount": 0, "MorePagesAvailable": more, "PageCookie": cookie, "RecordsReturned": 0}


def row(name: str, location: str = SITE, **extra: Any) -> dict:
    data = {"FileName": name, "Location": location, "Workload": "SharePoint"}
    data.update(extra)
    return data


@pytest.fixture
def graph() -> FakeGraph:
    return FakeGraph()


@pytest.fixture
def no_sleep() -> List[float]:
    return []
