import json
import logging
from pathlib import Path

import pytest
import yaml
from sqlalchemy import create_engine, text

from gp_config_mcp.models.options import RunOptions

INSTANCE_ID = "gp-dev"
MARKET_ID = "bonbeauty"

MARKET_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["market_id"],
    "properties": {
        "market_id": {"type": "string"},
        "name": {"type": "string"},
        "currency": {"type": "string"},
    },
}

PRODUCTS_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["products"],
    "properties": {
        "products": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["product_id"],
                "properties": {"product_id": {"type": "string"}, "name": {"type": "string"}},
            },
        },
    },
}

VENDOR_PRODUCTS_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["products"],
    "properties": {
        "vendor_id": {"type": "string"},
        "products": {"type": "array", "items": {"type": "object"}},
    },
}


def write_yaml(path: Path, payload) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return path


class MarketTree:
    """Temporary repository holding schemas and one market's fixtures."""

    def __init__(self, root: Path):
        self.root = root
        self.config_root = root / "GP" / "config"
        self.instance_dir = self.config_root / INSTANCE_ID
        self.market_dir = self.instance_dir / "markets" / MARKET_ID

        schemas = root / "specs" / "contracts" / "config" / "schemas"
        schemas.mkdir(parents=True)
        for name, schema in (
            ("market-runtime-config.v1.schema.json", MARKET_SCHEMA),
            ("products-catalog.v1.schema.json", PRODUCTS_SCHEMA),
            ("vendor-products-catalog.v1.schema.json", VENDOR_PRODUCTS_SCHEMA),
        ):
            (schemas / name).write_text(json.dumps(schema), encoding="utf-8")

        write_yaml(
            self.instance_dir / "instance.yaml",
            {"instance_id": INSTANCE_ID, "markets": [{"market_id": MARKET_ID}]},
        )

    def write_market(self, payload=None) -> Path:
        payload = payload or {"market_id": MARKET_ID, "name": "Bon Beauty"}
        return write_yaml(self.market_dir / "market.yaml", payload)

    def write_products(self, products) -> Path:
        return write_yaml(self.market_dir / "products.yaml", {"products": products})

    def write_vendor(self, dir_name: str, payload=None) -> Path:
        payload = payload or {"vendor_id": dir_name, "products": [{"product_id": "p1", "price": 10}]}
        return write_yaml(self.market_dir / "vendors" / dir_name / "products.yaml", payload)

    def write_full_market(self) -> None:
        self.write_market()
        self.write_products([{"product_id": "p1", "name": "A"}])
        self.write_vendor("v1")
        self.write_vendor("v2")


@pytest.fixture
def market_tree(tmp_path, monkeypatch) -> MarketTree:
    root = tmp_path / "repo"
    root.mkdir()
    monkeypatch.chdir(root)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("GP_ALLOW_PROD_MUTATIONS", raising=False)
    return MarketTree(root)


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'market.db'}"


@pytest.fixture
def db_engine(db_url):
    engine = create_engine(db_url)
    yield engine
    engine.dispose()


@pytest.fixture
def make_options(market_tree, db_url):
    def _make(operation: str, **overrides) -> RunOptions:
        values = {
            "instance_id": INSTANCE_ID,
            "market_id": MARKET_ID,
            "operation": operation,
            "config_root": market_tree.config_root,
            "repo_root": market_tree.root,
            "db_url": db_url,
        }
        values.update(overrides)
        return RunOptions(**values)

    return _make


def stored_rows(engine) -> list[tuple]:
    with engine.connect() as conn:
        rows = conn.execute(
            text(
                "SELECT section, record_key, data FROM gp_market_runtime_config "
                "ORDER BY section, record_key"
            )
        ).all()
    return [(r.section, r.record_key, json.loads(r.data)) for r in rows]


def create_scoped_tables(engine, market_id: str = MARKET_ID, matching: int = 5, with_channels: bool = True) -> None:
    """Create a metadata-scoped product table and, optionally, a sales channel with its assignment table."""
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE product (id TEXT PRIMARY KEY, title TEXT, metadata JSON)"))
        for i in range(matching):
            conn.execute(
                text("INSERT INTO product (id, title, metadata) VALUES (:id, :title, :metadata)"),
                {"id": f"prod_{i}", "title": f"Product {i}", "metadata": json.dumps({"gp_market_id": market_id})},
            )
        conn.execute(
            text("INSERT INTO product (id, title, metadata) VALUES ('prod_other', 'Other', :metadata)"),
            {"metadata": json.dumps({"gp_market_id": "othermarket"})},
        )
        if not with_channels:
            return

        conn.execute(text("CREATE TABLE sales_channel (id TEXT PRIMARY KEY, name TEXT, metadata JSON)"))
        conn.execute(
            text("CREATE TABLE product_sales_channel (id TEXT PRIMARY KEY, product_id TEXT, sales_channel_id TEXT)")
        )
        conn.execute(
            text("INSERT INTO sales_channel (id, name, metadata) VALUES ('sc_1', 'Bon', :metadata)"),
            {"metadata": json.dumps({"gp_market_id": market_id})},
        )
        conn.execute(
            text("INSERT INTO sales_channel (id, name, metadata) VALUES ('sc_2', 'Other', :metadata)"),
            {"metadata": json.dumps({"gp_market_id": "othermarket"})},
        )
        conn.execute(
            text(
                "INSERT INTO product_sales_channel (id, product_id, sales_channel_id) VALUES "
                "('psc_1', 'prod_0', 'sc_1'), ('psc_2', 'prod_other', 'sc_2')"
            )
        )


def count_table(engine, table_name: str) -> int:
    with engine.connect() as conn:
        return conn.execute(text(f"SELECT count(*) FROM {table_name}")).scalar()


@pytest.fixture(autouse=True)
def _reset_package_logger():
    yield
    logger = logging.getLogger("gp_config_mcp")
    logger.handlers = []
    logger.propagate = True
