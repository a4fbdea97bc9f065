"""Command line entry point for discovery, dry-run and live label migrations."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import threading
from datetime import datetime
from typing import List, Optional

from label_migrator.auth import AuthManager
from label_migrator.config import (
    DEFAULT_GRAPH_BASE_URL,
    MigrationConfig,
    is_guid,
    load_config,
    load_env_file,
    read_config_file,
)
from label_migrator.content_explorer import PowerShellContentExplorer, resolve_label_name
from label_migrator.coordinator import DiscoveryReport, MigrationCoordinator, MigrationReport
from label_migrator.enumerator import Enumerator
from label_migrator.errors import ConfigurationError, IndexServiceError
from label_migrator.labeling import GraphLabelClient
from label_migrator.logging_setup import configure_audit_logging, configure_file_logging
from label_migrator.models import RunMode
from label_migrator.mutator import Mutator
from label_migrator.permission_check import check_permissions, report
from label_migrator.reporting import (
    DISCOVERY_FILE_FIELDS,
    DISCOVERY_LOCATION_FIELDS,
    RESULT_FIELDS,
    AuditTrail,
    CsvRecordSink,
    format_tally,
    timestamped_path,
)
from label_migrator.resolver import Resolver

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130

logger = logging.getLogger("label_migrator.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="label-migrator",
        description="Find files carrying a sensitivity label through Content Explorer and relabel them via Microsoft Graph",
    )
    parser.add_argument("--config", help="Path to config.json (default: ./config.json when present)")
    parser.add_argument("--label", help="Source label name or GUID")
    parser.add_argument("--target-label-id", help="GUID of the label to assign")
    parser.add_argument("--mode", choices=[m.value for m in RunMode], help="Run mode (default: dry_run)")
    parser.add_argument("--partitions", help="Comma list of workloads: SharePoint,OneDrive")
    parser.add_argument("--page-size", type=int, help="Content Explorer page size")
    parser.add_argument("--delay-ms", type=int, help="Pause after every attempted write, in milliseconds")
    parser.add_argument("--justification", help="Justification text recorded with every label change")
    parser.add_argument("--extensions", help="Comma list of supported file extensions")
    parser.add_argument("--max-records", type=int, help="Stop after this many records")
    parser.add_argument("--output-dir", help="Directory for CSV artifacts")
    parser.add_argument("--logs-dir", default="logs", help="Directory for run and audit logs")
    parser.add_argument("--check-permissions", action="store_true",
                        help="Probe the Graph permissions a migration needs and exit")
    parser.add_argument("--probe-url", help="Sample file URL used by --check-permissions")
    return parser


def _overrides(args: argparse.Namespace) -> dict:
    return {
        "label": args.label,
        "target_label_id": args.target_label_id,
        "mode": args.mode,
        "partitions": args.partitions,
        "page_size": args.page_size,
        "inter_record_delay_ms": args.delay_ms,
        "justification_text": args.justification,
        "supported_extensions": args.extensions,
        "max_records": args.max_records,
        "output_dir": args.output_dir,
    }


def build_index(config: MigrationConfig) -> PowerShellContentExplorer:
    return PowerShellContentExplorer(config.index_script, pwsh_path=config.pwsh_path)


def build_graph_client(auth_settings: dict, base_url: str = DEFAULT_GRAPH_BASE_URL) -> GraphLabelClient:
    auth = AuthManager(auth_settings)
    logger.info("Graph client mode: %s", auth.client_mode)
    return GraphLabelClient(auth.get_token, base_url=base_url)


def _install_stop_handler(stop_event: threading.Event):
    def _handler(signum, frame):
        if stop_event.is_set():
            raise KeyboardInterrupt
        print("\nStop requested; finishing the current record. Press Ctrl+C again to abort.")
        stop_event.set()

    try:
        return signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # not on the main thread
        return None


def _print_partition_stats(result) -> None:
    for partition, stats in result.partition_stats.items():
        line = f"  {partition.value}: {stats.records} records, {stats.pages} pages"
        if stats.dropped:
            line += f", {stats.dropped} rows without a file name"
        if stats.loop_detected:
            line += ", STOPPED (repeated page cookie)"
        if stats.error:
            line += f", STOPPED ({stats.error})"
        print(line)


def _write_discovery(config: MigrationConfig, result: DiscoveryReport, stamp: str) -> None:
    files = CsvRecordSink(timestamped_path(config.output_dir, "discovery_files", stamp), DISCOVERY_FILE_FIELDS)
    files.write_many(result.file_rows())
    locations = CsvRecordSink(timestamped_path(config.output_dir, "discovery_locations", stamp),
                              DISCOVERY_LOCATION_FIELDS)
    locations.write_many(g.as_row() for g in result.locations)
    print(f"Discovery found {len(result.records)} files in {len(result.locations)} locations")
    for group in result.locations[:10]:
        print(f"  {group.file_count:>6}  {group.partition.value:<10} {group.storage_location}")
    print(f"File list:     {files.path}")
    print(f"Location list: {locations.path}")


def _run(config: MigrationConfig, args: argparse.Namespace, stop_event: threading.Event) -> int:
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    index = build_index(config)
    try:
        label_name = resolve_label_name(config.label, index, is_guid(config.label))
    except IndexServiceError as exc:
        raise ConfigurationError(f"Cannot resolve label {config.label!r}: {exc}") from exc

    enumerator = Enumerator(index, page_size=config.page_size)

    if config.mode is RunMode.DISCOVERY:
        coordinator = MigrationCoordinator(enumerator, stop_event=stop_event, max_records=config.max_records)
        result = coordinator.discover(label_name, config.partitions)
        _write_discovery(config, result, stamp)
        _print_partition_stats(result)
        print(format_tally(result.tally, "Discovery summary"))
        return EXIT_CANCELLED if result.cancelled else EXIT_OK

    client = build_graph_client(config.auth, config.graph_base_url)
    mutator = Mutator(
        Resolver(client),
        client,
        config.target_label_id,
        justification=config.justification_text,
        supported_extensions=config.supported_extensions,
        dry_run=config.mode is RunMode.DRY_RUN,
        delay_seconds=config.inter_record_delay,
    )
    results = CsvRecordSink(timestamped_path(config.output_dir, "migration_results", stamp), RESULT_FIELDS)
    audit = AuditTrail(configure_audit_logging(args.logs_dir, f"audit_{stamp}.log"))
    coordinator = MigrationCoordinator(
        enumerator,
        mutator,
        audit=audit,
        record_sink=results.emit_outcome,
        stop_event=stop_event,
        max_records=config.max_records,
    )
    print(f"Migrating label {label_name!r} -> {config.target_label_id} ({config.mode.value})")
    outcome: MigrationReport = coordinator.migrate(label_name, config.partitions)

    _print_partition_stats(outcome)
    title = "Dry run summary" if outcome.dry_run else "Migration summary"
    print(format_tally(outcome.tally, title))
    print(f"Results: {results.path}")
    if outcome.cancelled:
        return EXIT_CANCELLED
    return EXIT_FAILURES if outcome.tally.failed else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.check_permissions:
            load_env_file()
            file_values = read_config_file(args.config)
            base_url = os.getenv("GRAPH_BASE_URL") or file_values.get("graph_base_url") or DEFAULT_GRAPH_BASE_URL
            client = build_graph_client(file_values, base_url)
            return EXIT_OK if report(check_permissions(client, args.probe_url)) else EXIT_FAILURES

        config = load_config(args.config, overrides=_overrides(args))
        log_path = configure_file_logging(args.logs_dir, logger_names=["label_migrator", "msal"], console=True)
        logger.info("Run log: %s", log_path)

        stop_event = threading.Event()
        previous = _install_stop_handler(stop_event)
        try:
            return _run(config, args, stop_event)
        finally:
            if previous is not None:
                signal.signal(signal.SIGINT, previous)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}")
        return EXIT_CONFIG


if __name__ == "__main__":
    raise SystemExit(main())
