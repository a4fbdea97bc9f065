"""Graph permission probe run before a live migration.

Calls the endpoints a migration depends on and reports whether each call
succeeded (permission likely granted) or came back 401/403 (permission
missing). With a sample file URL it also resolves that file and reads its
label, which exercises the exact path the mutator takes.

Usage:
  label-migrator --check-permissions [--probe-url https://contoso.sharepoint.com/sites/x/Shared%20Documents/a.docx]
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, List, Optional

import requests

from label_migrator.labeling import GraphLabelClient
from label_migrator.resolver import encode_share_token

ENDPOINTS: Dict[str, Dict[str, str]] = {
    "sites_search": {
        "path": "/sites?search=*&$top=1",
        "desc": "Site collections access (Sites.Read.All or Sites.FullControl.All)",
    },
    "root_site": {
        "path": "/sites/root",
        "desc": "Tenant root site (Sites.Read.All)",
    },
}


@dataclass(frozen=True)
class ProbeResult:
    name: str
    desc: str
    verdict: str  # PASS, FAIL, WARN, ERROR
    status_code: Optional[int]
    detail: str
    payload: Optional[dict] = None

    def render(self) -> str:
        code = f" -> {self.status_code}" if self.status_code is not None else ""
        return f"[{self.verdict}] {self.name}: {self.desc}{code}\n  {self.detail}\n"


def _classify(name: str, desc: str, resp: requests.Response) -> ProbeResult:
    if resp.status_code < 400:
        try:
            data = resp.json()
            sample = json.dumps(data if isinstance(data, dict) else {"result": data}, indent=2)[:500]
        except ValueError:
            data, sample = None, resp.text[:500]
        return ProbeResult(name, desc, "PASS", resp.status_code, f"sample: {sample}",
                           payload=data if isinstance(data, dict) else None)
    if resp.status_code in (401, 403):
        return ProbeResult(name, desc, "FAIL", resp.status_code,
                           f"likely missing permission; body: {resp.text[:500]}")
    return ProbeResult(name, desc, "WARN", resp.status_code, f"body: {resp.text[:500]}")


def _call(client: GraphLabelClient, method: str, name: str, desc: str, path: str) -> ProbeResult:
    url = client.base_url + path
    try:
        headers = client.auth_headers()
        if method == "POST":
            resp = client.session.post(url, headers=headers, json={}, timeout=client.timeout)
        else:
            resp = client.session.get(url, headers=headers, timeout=client.timeout)
    except (requests.RequestException, RuntimeError) as exc:
        return ProbeResult(name, desc, "ERROR", None, f"exception calling {url}: {exc}")
    return _classify(name, desc, resp)


def check_permissions(client: GraphLabelClient, probe_url: Optional[str] = None) -> List[ProbeResult]:
    results = [_call(client, "GET", name, info["desc"], info["path"]) for name, info in ENDPOINTS.items()]
    if not probe_url:
        return results

    resolved = _call(client, "GET", "resolve_item", "Resolve a file by URL (Files.Read.All)",
                     f"/shares/{encode_share_token(probe_url)}/driveItem")
    results.append(resolved)
    item = resolved.payload or {}
    drive_id = (item.get("parentReference") or {}).get("driveId")
    if resolved.verdict != "PASS" or not drive_id or not item.get("id"):
        return results

    results.append(_call(client, "POST", "extract_labels", "Read sensitivity labels (Files.Read.All)",
                         f"/drives/{drive_id}/items/{item['id']}/extractSensitivityLabels"))
    return results


def report(results: List[ProbeResult]) -> bool:
    """Print every probe; True when nothing failed."""
    for result in results:
        print(result.render())
    return all(r.verdict in ("PASS", "WARN") for r in results)
