"""
Run configuration.

Values are layered: defaults, then config.json, then environment variables
(a .env file is honoured), then explicit overrides from the command line.
"""
from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dotenv import find_dotenv, load_dotenv

from label_migrator.errors import ConfigurationError
from label_migrator.models import PARTITION_ORDER, Partition, RunMode

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_EXTENSIONS = (".docx", ".xlsx", ".pptx", ".pdf")
DEFAULT_JUSTIFICATION = "Label migration by label-migrator"
DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
MAX_PAGE_SIZE = 10000
DEFAULT_INDEX_SCRIPT = os.path.join("scripts", "export_content_explorer.ps1")

_GUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")

# config.json key -> environment variable
ENV_KEYS = {
    "label": "MIGRATION_LABEL",
    "target_label_id": "TARGET_LABEL_ID",
    "mode": "MIGRATION_MODE",
    "partitions": "MIGRATION_PARTITIONS",
    "page_size": "PAGE_SIZE",
    "inter_record_delay_ms": "INTER_RECORD_DELAY_MS",
    "justification_text": "JUSTIFICATION_TEXT",
    "supported_extensions": "SUPPORTED_EXTENSIONS",
    "max_records": "MAX_RECORDS",
    "output_dir": "OUTPUT_DIR",
    "pwsh_path": "PWSH_PATH",
    "index_script": "INDEX_SCRIPT",
    "graph_base_url": "GRAPH_BASE_URL",
    "client_id": "CLIENT_ID",
    "client_secret": "CLIENT_SECRET",
    "tenant_id": "TENANT_ID",
    "authority": "AUTHORITY",
}


def is_guid(value: Optional[str]) -> bool:
    return bool(value) and bool(_GUID_RE.match(value.strip()))


@dataclass(frozen=True)
class MigrationConfig:
    label: str
    mode: RunMode = RunMode.DRY_RUN
    target_label_id: Optional[str] = None
    partitions: Tuple[Partition, ...] = PARTITION_ORDER
    page_size: int = 1000
    inter_record_delay_ms: int = 1000
    justification_text: str = DEFAULT_JUSTIFICATION
    supported_extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    max_records: Optional[int] = None
    output_dir: str = "output"
    pwsh_path: str = "pwsh"
    index_script: str = DEFAULT_INDEX_SCRIPT
    graph_base_url: str = DEFAULT_GRAPH_BASE_URL
    # MSAL settings are handed to AuthManager untouched
    auth: Dict[str, str] = field(default_factory=dict)

    @property
    def inter_record_delay(self) -> float:
        return self.inter_record_delay_ms / 1000.0

    @classmethod
    def from_sources(cls,
                     file_values: Optional[Mapping[str, Any]] = None,
                     environ: Optional[Mapping[str, str]] = None,
                     overrides: Optional[Mapping[str, Any]] = None) -> "MigrationConfig":
        merged: Dict[str, Any] = {}
        for key, value in (file_values or {}).items():
            if value is not None:
                merged[key] = value
        env = environ if environ is not None else os.environ
        for key, env_name in ENV_KEYS.items():
            value = env.get(env_name)
            if value:
                merged[key] = value
        for key, value in (overrides or {}).items():
            if value is not None:
                merged[key] = value
        return cls._build(merged)

    @classmethod
    def _build(cls, values: Mapping[str, Any]) -> "MigrationConfig":
        label = str(values.get("label") or "").strip()
        if not label:
            raise ConfigurationError("A source label (name or id) is required")

        mode = _parse_mode(values.get("mode", RunMode.DRY_RUN.value))

        target = values.get("target_label_id")
        target = str(target).strip() if target else None
        if mode is not RunMode.DISCOVERY:
            if not target:
                raise ConfigurationError(f"target_label_id is required in {mode.value} mode")
            if not is_guid(target):
                raise ConfigurationError(f"target_label_id must be a GUID, got {target!r}")
            if is_guid(label) and label.lower() == target.lower():
                raise ConfigurationError("Source and target label are the same")

        page_size = _parse_int(values.get("page_size", 1000), "page_size")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ConfigurationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

        delay_ms = _parse_int(values.get("inter_record_delay_ms", 1000), "inter_record_delay_ms")
        if delay_ms < 0:
            raise ConfigurationError("inter_record_delay_ms cannot be negative")

        max_records = values.get("max_records")
        if max_records is not None:
            max_records = _parse_int(max_records, "max_records")
            if max_records < 1:
                raise ConfigurationError("max_records must be positive")

        justification = str(values.get("justification_text") or DEFAULT_JUSTIFICATION).strip()

        auth = {}
        for key in ("client_id", "client_secret", "tenant_id", "authority"):
            if values.get(key):
                auth[key] = str(values[key])

        return cls(
            label=label,
            mode=mode,
            target_label_id=target,
            partitions=_parse_partitions(values.get("partitions")),
            page_size=page_size,
            inter_record_delay_ms=delay_ms,
            justification_text=justification,
            supported_extensions=_parse_extensions(values.get("supported_extensions")),
            max_records=max_records,
            output_dir=str(values.get("output_dir") or "output"),
            pwsh_path=str(values.get("pwsh_path") or "pwsh"),
            index_script=str(values.get("index_script") or DEFAULT_INDEX_SCRIPT),
            graph_base_url=str(values.get("graph_base_url") or DEFAULT_GRAPH_BASE_URL).rstrip("/"),
            auth=auth,
        )


def load_config(path: Optional[str] = None,
                environ: Optional[Mapping[str, str]] = None,
                overrides: Optional[Mapping[str, Any]] = None) -> MigrationConfig:
    """Build a MigrationConfig from config.json, the environment and CLI overrides.

    A missing default config.json is fine; a missing explicitly named file is not.
    """
    if environ is None:
        load_env_file()
    return MigrationConfig.from_sources(read_config_file(path), environ, overrides)


def load_env_file() -> bool:
    """Load .env from the working directory (or a parent) without overriding set variables."""
    return load_dotenv(find_dotenv(usecwd=True))


def read_config_file(path: Optional[str] = None) -> Dict[str, Any]:
    file_values: Dict[str, Any] = {}
    cfg_path = path or DEFAULT_CONFIG_PATH
    if os.path.exists(cfg_path):
        try:
            with open(cfg_path, "r", encoding="utf-8") as fh:
                file_values = json.load(fh)
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Cannot read {cfg_path}: {exc}") from exc
        if not isinstance(file_values, dict):
            raise ConfigurationError(f"{cfg_path} must contain a JSON object")
    elif path:
        raise ConfigurationError(f"Config file not found: {path}")
    return file_values


def _parse_mode(value: Any) -> RunMode:
    if isinstance(value, RunMode):
        return value
    text = str(value).strip().lower().replace("-", "_")
    if text == "dryrun":
        text = RunMode.DRY_RUN.value
    try:
        return RunMode(text)
    except ValueError:
        choices = ", ".join(m.value for m in RunMode)
        raise ConfigurationError(f"mode must be one of {choices}, got {value!r}") from None


def _parse_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None


def _split(value: Any) -> List[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part).strip() for part in value if str(part).strip()]


def _parse_partitions(value: Any) -> Tuple[Partition, ...]:
    if not value:
        return PARTITION_ORDER
    requested = set()
    for item in _split(value):
        try:
            requested.add(Partition.parse(item))
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from None
    if not requested:
        raise ConfigurationError("At least one partition must be selected")
    return tuple(p for p in PARTITION_ORDER if p in requested)


def _parse_extensions(value: Any) -> Tuple[str, ...]:
    if not value:
        return DEFAULT_EXTENSIONS
    extensions = []
    for item in _split(value):
        ext = item.lower()
        if not ext.startswith("."):
            ext = "." + ext
        if ext not in extensions:
            extensions.append(ext)
    if not extensions:
        raise ConfigurationError("supported_extensions cannot be empty")
    return tuple(extensions)
