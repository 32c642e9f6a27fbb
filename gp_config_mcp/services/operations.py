import logging
from pathlib import Path
from typing import Callable

from sqlalchemy.orm import Session

from gp_config_mcp.db.session import build_engine, transaction
from gp_config_mcp.models.options import RunOptions
from gp_config_mcp.models.report import OperationReport
from gp_config_mcp.services.config_loader import InputConfig, load_input_config
from gp_config_mcp.services.export_writer import build_export_document, default_export_path, write_export
from gp_config_mcp.services.merge_engine import merge_fill
from gp_config_mcp.services.runtime_config_repository import (
    delete_stored_rows,
    ensure_storage_table,
    get_existing_rows,
    upsert_row,
)
from gp_config_mcp.services.safety_gate import run_safety_gate
from gp_config_mcp.services.scope_discovery import (
    delete_scoped_rows,
    discover_market_scope,
    export_scoped_snapshot,
)

logger = logging.getLogger(__name__)


def execute_fill(db: Session, options: RunOptions, input_config: InputConfig, report: OperationReport) -> None:
    existing = {
        (r["section"], r["record_key"]): r
        for r in get_existing_rows(db, options.instance_id, options.market_id)
    }

    for incoming in input_config.incoming_rows():
        current = existing.get((incoming.section, incoming.record_key))
        if current is None:
            report.inserted += 1
            if not options.dry_run:
                upsert_row(db, options.instance_id, options.market_id, incoming.section, incoming.record_key, incoming.data)
            continue

        merged, changed = merge_fill(current["data"], incoming.data)
        if not changed:
            report.skipped += 1
            continue

        report.updated += 1
        if not options.dry_run:
            upsert_row(db, options.instance_id, options.market_id, incoming.section, incoming.record_key, merged)


def _clear_market(db: Session, options: RunOptions, report: OperationReport) -> None:
    # Discovery validates every identifier before the first DELETE is issued.
    scope = discover_market_scope(db, options.market_id)

    stored = get_existing_rows(db, options.instance_id, options.market_id)
    report.deleted += len(stored)
    if not options.dry_run:
        delete_stored_rows(db, options.instance_id, options.market_id)

    report.deleted += delete_scoped_rows(db, scope, options.market_id, options.dry_run)


def execute_overwrite(db: Session, options: RunOptions, input_config: InputConfig, report: OperationReport) -> None:
    _clear_market(db, options, report)

    for row in input_config.incoming_rows():
        report.inserted += 1
        if not options.dry_run:
            upsert_row(db, options.instance_id, options.market_id, row.section, row.record_key, row.data)


def execute_delete(db: Session, options: RunOptions, report: OperationReport) -> None:
    _clear_market(db, options, report)


def execute_export(db: Session, options: RunOptions, report: OperationReport) -> None:
    rows = get_existing_rows(db, options.instance_id, options.market_id)
    scope = discover_market_scope(db, options.market_id)
    snapshot = export_scoped_snapshot(db, scope, options.market_id)
    report.exported_tables = list(snapshot.keys())

    document = build_export_document(options.instance_id, options.market_id, rows, snapshot)

    if options.output_path is not None:
        output_path = Path(options.output_path).resolve()
    else:
        output_path = default_export_path(options.repo_root, options.instance_id, options.market_id)
    report.output_path = str(output_path)

    if options.dry_run:
        report.skipped = len(rows)
        return

    write_export(output_path, document)
    report.inserted = len(rows)
    logger.info("Exported %s stored rows and %s tables to %s", len(rows), len(snapshot), output_path)


def run_operation(options: RunOptions, prompt: Callable[[str], str] | None = None) -> OperationReport:
    """Gate, load and execute one operation in a single transaction."""
    run_safety_gate(options, prompt)

    report = OperationReport(
        operation=options.operation,
        instance_id=options.instance_id,
        market_id=options.market_id,
        dry_run=options.dry_run,
    )

    input_config = InputConfig()
    if options.operation in ("fill", "overwrite"):
        input_config = load_input_config(
            options.config_root, options.repo_root, options.instance_id, options.market_id
        )
        for warning in input_config.warnings:
            logger.warning(warning)
        report.warnings.extend(input_config.warnings)

    if options.dry_run:
        logger.info("Dry-run enabled: no database writes will be performed.")

    engine = build_engine(options.db_url)
    try:
        with transaction(engine) as db:
            ensure_storage_table(db)
            if options.operation == "fill":
                execute_fill(db, options, input_config, report)
            elif options.operation == "overwrite":
                execute_overwrite(db, options, input_config, report)
            elif options.operation == "delete":
                execute_delete(db, options, report)
            else:
                execute_export(db, options, report)
    finally:
        engine.dispose()

    logger.info(
        "%s %s/%s: inserted=%s updated=%s skipped=%s deleted=%s",
        options.operation,
        options.instance_id,
        options.market_id,
        report.inserted,
        report.updated,
        report.skipped,
        report.deleted,
    )
    return report
