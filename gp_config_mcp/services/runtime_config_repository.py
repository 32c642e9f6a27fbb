import json
from typing import Any

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from gp_config_mcp.errors import DbError
from gp_config_mcp.models.runtime_config import MarketRuntimeConfig

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_name(db: Session) -> str:
    return db.get_bind().dialect.name


def ensure_storage_table(db: Session) -> None:
    MarketRuntimeConfig.__table__.create(bind=db.connection(), checkfirst=True)


def _extract_data_payload(data: Any) -> Any:
    if isinstance(data, str):
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            return data
    return data


def get_existing_rows(db: Session, instance_id: str, market_id: str) -> list[dict[str, Any]]:
    rows = (
        db.query(
            MarketRuntimeConfig.section,
            MarketRuntimeConfig.record_key,
            MarketRuntimeConfig.data,
        )
        .filter(MarketRuntimeConfig.instance_id == instance_id)
        .filter(MarketRuntimeConfig.market_id == market_id)
        .order_by(MarketRuntimeConfig.section, MarketRuntimeConfig.record_key)
        .all()
    )
    return [
        {
            "section": r.section,
            "record_key": r.record_key,
            "data": _extract_data_payload(r.data),
        }
        for r in rows
    ]


def upsert_row(
    db: Session,
    instance_id: str,
    market_id: str,
    section: str,
    record_key: str,
    data: Any,
) -> None:
    insert = _UPSERT_DIALECTS.get(dialect_name(db))
    if insert is None:
        raise DbError(f"Unsupported database dialect for upsert: {dialect_name(db)}")

    stmt = insert(MarketRuntimeConfig.__table__).values(
        instance_id=instance_id,
        market_id=market_id,
        section=section,
        record_key=record_key,
        data=data,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["instance_id", "market_id", "section", "record_key"],
        set_={"data": stmt.excluded.data, "updated_at": func.now()},
    )
    db.execute(stmt)


def delete_stored_rows(db: Session, instance_id: str, market_id: str) -> int:
    return (
        db.query(MarketRuntimeConfig)
        .filter(MarketRuntimeConfig.instance_id == instance_id)
        .filter(MarketRuntimeConfig.market_id == market_id)
        .delete(synchronize_session=False)
    )
