"""Discovery of market-owned rows outside the processor's own table.

A row belongs to a market when one of its JSON columns carries
``gp_market_id = <market>``. Sales-channel assignment tables carry no metadata
of their own and are reached through the ids of the market's sales channels.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, bindparam, inspect, text
from sqlalchemy.orm import Session

from gp_config_mcp.errors import DbError
from gp_config_mcp.models.runtime_config import STORAGE_TABLE
from gp_config_mcp.services.runtime_config_repository import dialect_name

logger = logging.getLogger(__name__)

MARKET_METADATA_KEY = "gp_market_id"
SALES_CHANNEL_TABLE = "sales_channel"
CHANNEL_ASSIGNMENT_TABLES = (
    "product_sales_channel",
    "publishable_api_key_sales_channel",
    "sales_channel_stock_location",
)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class ScopedTable:
    table_name: str
    column_name: str


@dataclass
class MarketScope:
    metadata_tables: list[ScopedTable]
    sales_channel_ids: list[str]
    assignment_tables: list[str]

    def delete_order(self) -> list[str]:
        return build_scoped_delete_order(
            [t.table_name for t in self.metadata_tables],
            self.assignment_tables,
        )

    def metadata_column(self, table_name: str) -> str | None:
        for entry in self.metadata_tables:
            if entry.table_name == table_name:
                return entry.column_name
        return None


def quote_ident(identifier: str) -> str:
    if not isinstance(identifier, str) or not _IDENTIFIER_RE.match(identifier):
        raise DbError(f"Invalid SQL identifier: {identifier!r}")
    return f'"{identifier}"'


def _is_postgres(db: Session) -> bool:
    return dialect_name(db) == "postgresql"


def _qualified(db: Session, table_name: str) -> str:
    if _is_postgres(db):
        return f"public.{quote_ident(table_name)}"
    return quote_ident(table_name)


def _metadata_predicate(db: Session, column_name: str) -> str:
    column = quote_ident(column_name)
    if dialect_name(db) == "sqlite":
        return f"json_extract({column}, '$.{MARKET_METADATA_KEY}') = :market_id"
    return f"{column} ->> '{MARKET_METADATA_KEY}' = :market_id"


def _channel_predicate() -> str:
    return "sales_channel_id IN :channel_ids"


def _channel_params(channel_ids: list[str]) -> dict[str, Any]:
    return {"channel_ids": list(channel_ids)}


def _statement(sql: str, where: str):
    stmt = text(f"{sql} WHERE {where}")
    if ":channel_ids" in where:
        stmt = stmt.bindparams(bindparam("channel_ids", expanding=True))
    return stmt


def table_exists(db: Session, table_name: str) -> bool:
    if _is_postgres(db):
        row = db.execute(
            text(
                """
                SELECT 1
                FROM information_schema.tables
                WHERE table_schema = 'public' AND table_name = :table_name
                LIMIT 1
                """
            ),
            {"table_name": table_name},
        ).first()
        return row is not None
    return inspect(db.connection()).has_table(table_name)


def list_json_columns(db: Session) -> list[tuple[str, str]]:
    """Return ``(table, column)`` pairs for every JSON column of a base table, sorted by table then column."""
    if _is_postgres(db):
        rows = db.execute(
            text(
                """
                SELECT c.table_name, c.column_name
                FROM information_schema.columns c
                JOIN information_schema.tables t
                  ON t.table_schema = c.table_schema AND t.table_name = c.table_name
                WHERE c.table_schema = 'public'
                  AND t.table_type = 'BASE TABLE'
                  AND c.data_type IN ('json', 'jsonb')
                ORDER BY c.table_name, c.column_name
                """
            )
        ).all()
        return [(r.table_name, r.column_name) for r in rows]

    inspector = inspect(db.connection())
    pairs = []
    for table_name in inspector.get_table_names():
        for col in inspector.get_columns(table_name):
            if isinstance(col["type"], JSON):
                pairs.append((table_name, col["name"]))
    return sorted(pairs)


def count_rows(db: Session, table_name: str, where: str, params: dict[str, Any]) -> int:
    stmt = _statement(f"SELECT count(*) AS cnt FROM {_qualified(db, table_name)}", where)
    return int(db.execute(stmt, params).scalar() or 0)


def select_rows(db: Session, table_name: str, where: str, params: dict[str, Any]) -> list[dict[str, Any]]:
    stmt = _statement(f"SELECT * FROM {_qualified(db, table_name)}", where)
    return [dict(r) for r in db.execute(stmt, params).mappings().all()]


def delete_rows(db: Session, table_name: str, where: str, params: dict[str, Any]) -> int:
    stmt = _statement(f"DELETE FROM {_qualified(db, table_name)}", where)
    return db.execute(stmt, params).rowcount or 0


def discover_metadata_scoped_tables(db: Session, market_id: str) -> list[ScopedTable]:
    discovered: list[ScopedTable] = []
    seen: set[str] = set()
    for table_name, column_name in list_json_columns(db):
        if table_name == STORAGE_TABLE or table_name in seen:
            continue
        count = count_rows(db, table_name, _metadata_predicate(db, column_name), {"market_id": market_id})
        if count > 0:
            logger.debug("Scoped table %s via %s (%s rows)", table_name, column_name, count)
            discovered.append(ScopedTable(table_name, column_name))
            seen.add(table_name)
    return discovered


def get_scoped_sales_channel_ids(db: Session, market_id: str) -> list[str]:
    if not table_exists(db, SALES_CHANNEL_TABLE):
        return []
    stmt = _statement(
        f"SELECT id FROM {_qualified(db, SALES_CHANNEL_TABLE)}",
        _metadata_predicate(db, "metadata"),
    )
    rows = db.execute(stmt, {"market_id": market_id}).all()
    return [str(r.id) for r in rows if r.id]


def discover_market_scope(db: Session, market_id: str) -> MarketScope:
    metadata_tables = discover_metadata_scoped_tables(db, market_id)
    channel_ids = get_scoped_sales_channel_ids(db, market_id)

    assignment_tables: list[str] = []
    if channel_ids:
        assignment_tables = [t for t in CHANNEL_ASSIGNMENT_TABLES if table_exists(db, t)]

    return MarketScope(
        metadata_tables=metadata_tables,
        sales_channel_ids=channel_ids,
        assignment_tables=assignment_tables,
    )


def build_scoped_delete_order(metadata_tables: list[str], assignment_tables: list[str]) -> list[str]:
    """Assignment tables first, metadata tables next, ``sales_channel`` last."""
    ordered: list[str] = []
    for table_name in [*assignment_tables, *metadata_tables]:
        if table_name not in ordered:
            ordered.append(table_name)

    if SALES_CHANNEL_TABLE in ordered:
        ordered.remove(SALES_CHANNEL_TABLE)
        ordered.append(SALES_CHANNEL_TABLE)
    return ordered


def delete_scoped_rows(db: Session, scope: MarketScope, market_id: str, dry_run: bool) -> int:
    """Delete (or, on a dry run, count) every row in ``scope``."""
    removed = 0
    action = count_rows if dry_run else delete_rows
    for table_name in scope.delete_order():
        if table_name in scope.assignment_tables:
            if not scope.sales_channel_ids:
                continue
            removed += action(db, table_name, _channel_predicate(), _channel_params(scope.sales_channel_ids))
            continue

        column_name = scope.metadata_column(table_name)
        if column_name is None:
            continue
        removed += action(db, table_name, _metadata_predicate(db, column_name), {"market_id": market_id})
    return removed


def export_scoped_snapshot(db: Session, scope: MarketScope, market_id: str) -> dict[str, list[dict[str, Any]]]:
    snapshot: dict[str, list[dict[str, Any]]] = {}
    for entry in scope.metadata_tables:
        snapshot[entry.table_name] = select_rows(
            db, entry.table_name, _metadata_predicate(db, entry.column_name), {"market_id": market_id}
        )

    if scope.sales_channel_ids:
        for table_name in scope.assignment_tables:
            snapshot[table_name] = select_rows(
                db, table_name, _channel_predicate(), _channel_params(scope.sales_channel_ids)
            )
    return dict(sorted(snapshot.items()))
