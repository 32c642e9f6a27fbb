import math
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from gp_config_mcp.settings import EXPORT_SCHEMA_VERSION


class _ExportDumper(yaml.SafeDumper):
    def ignore_aliases(self, data):
        return True


def utc_timestamp(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def default_export_path(repo_root: Path, instance_id: str, market_id: str, now: datetime | None = None) -> Path:
    stamp = utc_timestamp(now).replace(":", "-").replace(".", "-")
    return repo_root / "GP" / "export" / "config" / instance_id / "markets" / market_id / f"export-{stamp}.yaml"


def _yaml_safe(value: Any):
    if value is None or isinstance(value, (bool, str, int, datetime, date)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, dict):
        return {str(k): _yaml_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_yaml_safe(v) for v in value]
    return str(value)


def build_export_document(
    instance_id: str,
    market_id: str,
    stored_rows: list[dict[str, Any]],
    db_snapshot: dict[str, list[dict[str, Any]]],
    now: datetime | None = None,
) -> dict[str, Any]:
    market = None
    products = None
    vendors: dict[str, Any] = {}
    for row in stored_rows:
        if row["section"] == "market" and row["record_key"] == "market":
            market = row["data"]
        elif row["section"] == "products" and row["record_key"] == "products":
            products = row["data"]
        elif row["section"] == "vendor_products":
            vendors[row["record_key"]] = row["data"]

    return {
        "meta": {
            "generated_at": utc_timestamp(now),
            "schema_version": EXPORT_SCHEMA_VERSION,
            "instance_id": instance_id,
            "market_id": market_id,
        },
        "market": market,
        "products": products,
        "vendors": vendors,
        "db_snapshot": _yaml_safe(db_snapshot),
    }


def dump_export_yaml(document: dict[str, Any]) -> str:
    return yaml.dump(
        document,
        Dumper=_ExportDumper,
        sort_keys=False,
        allow_unicode=True,
        width=120,
        default_flow_style=False,
    )


def write_export(path: Path, document: dict[str, Any]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_export_yaml(document), encoding="utf-8")
    return path
