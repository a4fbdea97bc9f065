from __future__ import annotations

import base64

import pytest

from conftest import decode_share_token
from label_migrator.errors import ResolveError
from label_migrator.models import CanonicalRecord, Partition, RemoteHandle
from label_migrator.resolver import Resolver, encode_share_token, item_location, storage_location


def test_share_token_is_unpadded_base64url_with_prefix() -> None:
    url = "https://contoso.sharepoint.com/sites/a/Shared Documents/??>.docx"

    token = encode_share_token(url)

    assert token.startswith("u!")
    assert "=" not in token and "+" not in token and "/" not in token
    expected = base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii").rstrip("=")
    assert token == "u!" + expected
    assert decode_share_token(token) == url


def test_item_location_appends_file_name_to_folder() -> None:
    folder = CanonicalRecord("a b.docx", "https://x/sites/s/Docs/", Partition.SHAREPOINT)
    direct = CanonicalRecord("a b.docx", "https://x/sites/s/Docs/a%20b.docx", Partition.SHAREPOINT)
    missing = CanonicalRecord("a.docx", "N/A", Partition.SHAREPOINT)

    assert item_location(folder) == "https://x/sites/s/Docs/a b.docx"
    assert item_location(direct) == "https://x/sites/s/Docs/a%20b.docx"
    assert item_location(missing) == "N/A"


@pytest.mark.parametrize(
    "location, partition, expected",
    [
        ("https://x.sharepoint.com/sites/Finance/Shared Documents/q", Partition.SHAREPOINT,
         "https://x.sharepoint.com/sites/Finance"),
        ("https://x.sharepoint.com/teams/ops/Docs", Partition.SHAREPOINT, "https://x.sharepoint.com/teams/ops"),
        ("https://x-my.sharepoint.com/personal/ann_x_com/Documents/a.docx", Partition.ONEDRIVE,
         "https://x-my.sharepoint.com/personal/ann_x_com"),
        ("https://x.sharepoint.com/Shared Documents", Partition.SHAREPOINT, "https://x.sharepoint.com"),
        ("N/A", Partition.ONEDRIVE, "N/A"),
        ("relative/path", Partition.ONEDRIVE, "relative/path"),
    ],
)
def test_storage_location(location: str, partition: Partition, expected: str) -> None:
    assert storage_location(CanonicalRecord("a.docx", location, partition)) == expected


def test_resolve_returns_handle(graph) -> None:
    graph.add_file("https://x/sites/s/Docs/a.docx", "item-1", drive_id="drive-1")

    handle = Resolver(graph).resolve("https://x/sites/s/Docs/a.docx")

    assert handle == RemoteHandle(store_id="drive-1", item_id="item-1", display_name="a.docx")


def test_not_found_collapses_to_resolve_error(graph) -> None:
    with pytest.raises(ResolveError, match="itemNotFound"):
        Resolver(graph).resolve("https://x/sites/s/Docs/missing.docx")


@pytest.mark.parametrize("location", ["N/A", "", "sites/s/a.docx"])
def test_malformed_reference_fails_without_lookup(graph, location: str) -> None:
    with pytest.raises(ResolveError):
        Resolver(graph).resolve(location)
    assert graph.resolve_calls == []


def test_unexpected_payload_is_resolve_error() -> None:
    class _Broken:
        def get_shared_drive_item(self, share_token):
            return {"id": "x"}

    with pytest.raises(ResolveError):
        Resolver(_Broken()).resolve("https://x/sites/s/a.docx")
