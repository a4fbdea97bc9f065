"""
Content Explorer (Microsoft Purview) access.

The index is only reachable from PowerShell (Export-ContentExplorerData in the
ExchangeOnlineManagement module), so pages are fetched by running the bundled
script with pwsh and reading JSON from its stdout. The script prints
{"error": ...} and exits non-zero on failure.
"""
from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, List, Optional, Protocol

from label_migrator.errors import IndexServiceError
from label_migrator.models import Partition

TAG_TYPE = "Sensitivity"

logger = logging.getLogger(__name__)


class IndexService(Protocol):
    def fetch_page(self, label: str, partition: Partition, page_size: int,
                   cursor: Optional[str] = None) -> Optional[List[Any]]:
        ...

    def lookup_label(self, identity: str) -> dict:
        ...


class PowerShellContentExplorer:
    """Runs scripts/export_content_explorer.ps1 once per request."""

    def __init__(self, script_path: str, pwsh_path: str = "pwsh", env_path: str = ".env",
                 timeout: Optional[float] = None):
        self.script_path = script_path
        self.pwsh_path = pwsh_path
        self.env_path = env_path
        self.timeout = timeout

    def _run(self, args: List[str]) -> Any:
        command = [self.pwsh_path, "-NoProfile", "-NonInteractive", "-File", self.script_path,
                   "-EnvPath", self.env_path] + args
        logger.debug("Running %s", " ".join(command))
        try:
            proc = subprocess.run(command, capture_output=True, text=True, check=False, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise IndexServiceError(f"Could not run {self.pwsh_path}: {exc}") from exc

        stdout = proc.stdout.strip()
        if proc.returncode != 0:
            detail = proc.stderr.strip() or stdout
            if stdout.startswith("{"):
                try:
                    detail = json.loads(stdout).get("error", detail)
                except ValueError:
                    pass
            raise IndexServiceError(f"Content Explorer script failed (exit {proc.returncode}): {detail}")
        if proc.stderr.strip():
            # informational output from Connect-IPPSSession and friends
            logger.debug("pwsh stderr: %s", proc.stderr.strip())
        if not stdout:
            return None
        try:
            return json.loads(stdout)
        except ValueError as exc:
            raise IndexServiceError(f"Content Explorer returned invalid JSON: {stdout[:200]}") from exc

    def fetch_page(self, label: str, partition: Partition, page_size: int,
                   cursor: Optional[str] = None) -> Optional[List[Any]]:
        """Return [metadata, row, row, ...] for one page, or None when nothing came back."""
        args = ["-Action", "Export", "-TagType", TAG_TYPE, "-TagName", label,
                "-Workload", partition.value, "-PageSize", str(page_size)]
        if cursor:
            args += ["-PageCookie", cursor]
        result = self._run(args)
        if result is None:
            return None
        # ConvertTo-Json collapses a one-element array into a bare object
        if isinstance(result, dict):
            return [result]
        if not isinstance(result, list):
            raise IndexServiceError(f"Unexpected Content Explorer payload: {type(result).__name__}")
        return result

    def lookup_label(self, identity: str) -> dict:
        """Return the label's {"Name", "Guid"} as reported by Get-Label."""
        result = self._run(["-Action", "Label", "-Identity", identity])
        if isinstance(result, list):
            result = result[0] if result else None
        if not isinstance(result, dict) or not result.get("Name"):
            raise IndexServiceError(f"Label not found: {identity}")
        return result


def resolve_label_name(label: str, index: IndexService, label_is_id: bool) -> str:
    """The index filters on the label's display name; translate an id when one was given."""
    if not label_is_id:
        return label
    info = index.lookup_label(label)
    logger.info("Label %s resolved to %r", label, info["Name"])
    return str(info["Name"])
