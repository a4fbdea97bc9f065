from __future__ import annotations

import json
from typing import Any, List, Optional

import pytest

from label_migrator.errors import GraphRequestError
from label_migrator.labeling import GraphLabelClient


class _Response:
    def __init__(self, status_code: int, payload: Any = None, headers: Optional[dict] = None,
                 text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = text if text is not None else (json.dumps(payload) if payload is not None else "")
        self.content = self.text.encode("utf-8")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _FakeSession:
    def __init__(self, responses: List[_Response]) -> None:
        self._responses = list(responses)
        self.calls: List[tuple] = []

    def _next(self, method: str, url: str, **kwargs: Any) -> _Response:
        self.calls.append((method, url, kwargs))
        return self._responses.pop(0)

    def get(self, url: str, **kwargs: Any) -> _Response:
        return self._next("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> _Response:
        return self._next("POST", url, **kwargs)


def _client(responses: List[_Response]) -> GraphLabelClient:
    return GraphLabelClient(lambda: "tok", base_url="https://graph.example/v1.0/", session=_FakeSession(responses))


def test_shared_item_lookup_uses_token_path_and_bearer() -> None:
    client = _client([_Response(200, {"id": "i1", "parentReference": {"driveId": "d1"}})])

    item = client.get_shared_drive_item("u!abc")

    method, url, kwargs = client.session.calls[0]
    assert (method, url) == ("GET", "https://graph.example/v1.0/shares/u!abc/driveItem")
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert kwargs["timeout"] == 30
    assert item["id"] == "i1"


def test_current_label_is_first_extracted_label() -> None:
    client = _client([
        _Response(200, {"labels": [{"sensitivityLabelId": "L1", "assignmentMethod": "standard"},
                                   {"sensitivityLabelId": "L2"}]}),
        _Response(200, {"labels": []}),
    ])

    assert client.get_current_label_id("d1", "i1") == "L1"
    assert client.get_current_label_id("d1", "i1") is None
    assert client.session.calls[0][1].endswith("/drives/d1/items/i1/extractSensitivityLabels")


def test_assign_posts_privileged_body_and_returns_monitor() -> None:
    client = _client([_Response(202, None, headers={"Location": "https://monitor/1"}, text="")])

    monitor = client.assign_sensitivity_label("d1", "i1", "L9", "reason")

    method, url, kwargs = client.session.calls[0]
    assert method == "POST"
    assert url.endswith("/drives/d1/items/i1/assignSensitivityLabel")
    assert kwargs["json"] == {
        "sensitivityLabelId": "L9",
        "assignmentMethod": "privileged",
        "justificationText": "reason",
    }
    assert monitor == "https://monitor/1"


def test_graph_error_body_is_parsed() -> None:
    client = _client([_Response(403, {"error": {"code": "accessDenied", "message": "Access denied"}})])

    with pytest.raises(GraphRequestError) as excinfo:
        client.assign_sensitivity_label("d1", "i1", "L9", "reason")

    assert excinfo.value.status_code == 403
    assert excinfo.value.code == "accessDenied"
    assert excinfo.value.message == "Access denied"


def test_non_json_error_keeps_text() -> None:
    client = _client([_Response(503, None, text="Service Unavailable")])

    with pytest.raises(GraphRequestError, match="503 unknown: Service Unavailable"):
        client.get_shared_drive_item("u!abc")
