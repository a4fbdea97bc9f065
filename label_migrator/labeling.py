"""
Labeling module.
Reads and assigns Microsoft Purview sensitivity labels on drive items through Microsoft Graph.
"""
import logging
from typing import Any, Callable, Dict, Optional

import requests

from label_migrator.config import DEFAULT_GRAPH_BASE_URL
from label_migrator.errors import GraphRequestError

ASSIGNMENT_METHOD = "privileged"

logger = logging.getLogger(__name__)


class GraphLabelClient:
    """Thin wrapper over the three Graph calls a migration needs.

    `token_provider` is called for every request (AuthManager.get_token in practice).
    """

    def __init__(self, token_provider: Callable[[], str], base_url: str = DEFAULT_GRAPH_BASE_URL,
                 session: Optional[requests.Session] = None, timeout: float = 30):
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token_provider()}",
            "Accept": "application/json",
        }

    @staticmethod
    def _raise_for_status(resp: requests.Response) -> None:
        if resp.status_code < 400:
            return
        code, message = "unknown", resp.text[:500]
        try:
            error = resp.json().get("error", {})
            code = error.get("code", code)
            message = error.get("message", message)
        except (ValueError, AttributeError):
            pass
        raise GraphRequestError(resp.status_code, code, message)

    def _get(self, path: str) -> Dict[str, Any]:
        resp = self.session.get(self.base_url + path, headers=self.auth_headers(), timeout=self.timeout)
        self._raise_for_status(resp)
        return resp.json()

    def _post(self, path: str, body: Optional[dict] = None) -> requests.Response:
        resp = self.session.post(self.base_url + path, headers=self.auth_headers(), json=body or {},
                                 timeout=self.timeout)
        self._raise_for_status(resp)
        return resp

    def get_shared_drive_item(self, share_token: str) -> Dict[str, Any]:
        """GET /shares/{token}/driveItem."""
        return self._get(f"/shares/{share_token}/driveItem")

    def extract_sensitivity_labels(self, drive_id: str, item_id: str) -> Dict[str, Any]:
        resp = self._post(f"/drives/{drive_id}/items/{item_id}/extractSensitivityLabels")
        return resp.json() if resp.content else {}

    def get_current_label_id(self, drive_id: str, item_id: str) -> Optional[str]:
        """The label currently stamped on the file, or None if it carries none."""
        labels = self.extract_sensitivity_labels(drive_id, item_id).get("labels") or []
        if not labels:
            return None
        return labels[0].get("sensitivityLabelId")

    def assign_sensitivity_label(self, drive_id: str, item_id: str, label_id: str,
                                 justification: str) -> Optional[str]:
        """Request the label change.

        Graph answers 202 Accepted and finishes the work asynchronously; the
        monitor URL from the Location header is returned but never polled here.
        """
        body = {
            "sensitivityLabelId": label_id,
            "assignmentMethod": ASSIGNMENT_METHOD,
            "justificationText": justification,
        }
        resp = self._post(f"/drives/{drive_id}/items/{item_id}/assignSensitivityLabel", body)
        monitor = resp.headers.get("Location")
        logger.debug("assignSensitivityLabel accepted for %s/%s (monitor=%s)", drive_id, item_id, monitor)
        return monitor
