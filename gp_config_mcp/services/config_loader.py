import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from gp_config_mcp.errors import ConsistencyError, LoadError
from gp_config_mcp.models.runtime_config import (
    SECTION_MARKET,
    SECTION_PRODUCTS,
    SECTION_VENDOR_PRODUCTS,
)
from gp_config_mcp.settings import SCHEMA_FILES, schemas_dir

logger = logging.getLogger(__name__)


class _FixtureLoader(yaml.SafeLoader):
    """Safe loader that leaves ISO dates as plain strings."""


_FixtureLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


@dataclass
class IncomingRow:
    section: str
    record_key: str
    data: dict[str, Any]


@dataclass
class MarketPaths:
    instance_yaml: Path
    market_dir: Path
    market_yaml: Path
    products_yaml: Path
    vendors_dir: Path

    @classmethod
    def resolve(cls, config_root: Path, instance_id: str, market_id: str) -> "MarketPaths":
        instance_dir = Path(config_root) / instance_id
        market_dir = instance_dir / "markets" / market_id
        return cls(
            instance_yaml=instance_dir / "instance.yaml",
            market_dir=market_dir,
            market_yaml=market_dir / "market.yaml",
            products_yaml=market_dir / "products.yaml",
            vendors_dir=market_dir / "vendors",
        )


@dataclass
class InputConfig:
    market: dict[str, Any] | None = None
    products: dict[str, Any] | None = None
    vendors: dict[str, dict[str, Any]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def incoming_rows(self) -> list[IncomingRow]:
        """Rows in merge order: market, products, then vendors in directory order."""
        rows: list[IncomingRow] = []
        if self.market is not None:
            rows.append(IncomingRow(SECTION_MARKET, SECTION_MARKET, self.market))
        if self.products is not None:
            rows.append(IncomingRow(SECTION_PRODUCTS, SECTION_PRODUCTS, self.products))
        for vendor_id, vendor_products in self.vendors.items():
            rows.append(IncomingRow(SECTION_VENDOR_PRODUCTS, vendor_id, vendor_products))
        return rows


def read_yaml_object(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            parsed = yaml.load(f, Loader=_FixtureLoader)
    except (OSError, UnicodeDecodeError) as exc:
        raise LoadError(f"Cannot read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise LoadError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(parsed, dict):
        raise LoadError(f"Invalid YAML object in {path}")
    return parsed


def load_json_schema(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise LoadError(f"Missing JSON schema: {path}")
    try:
        schema = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise LoadError(f"Invalid JSON schema {path}: {exc}") from exc
    if not isinstance(schema, dict):
        raise LoadError(f"Invalid JSON schema {path}: root must be an object")
    return schema


def _instance_path(error) -> str:
    if not error.absolute_path:
        return "$"
    return "/" + "/".join(str(part) for part in error.absolute_path)


def _path_sort_key(error) -> list[tuple[int, Any]]:
    return [(0, p) if isinstance(p, int) else (1, str(p)) for p in error.absolute_path]


def validate_against_schema(schema: dict[str, Any], payload: dict[str, Any], label: str) -> None:
    # The meta-schema is not enforced; unknown keywords in the contracts are tolerated.
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(payload), key=_path_sort_key)
    if errors:
        details = "; ".join(f"{_instance_path(e)} {e.message or 'schema error'}" for e in errors)
        raise LoadError(f"Schema validation failed for {label}: {details}")


def assert_instance_lists_market(instance_yaml: Path, instance_id: str, market_id: str) -> None:
    if not instance_yaml.is_file():
        raise LoadError(f"Missing instance.yaml: {instance_yaml}")

    instance_data = read_yaml_object(instance_yaml)
    declared = instance_data.get("instance_id")
    if declared != instance_id:
        raise ConsistencyError(
            f"instance.yaml instance_id='{declared}' does not match --instance-id='{instance_id}'"
        )

    markets = instance_data.get("markets")
    markets = markets if isinstance(markets, list) else []
    if not any(isinstance(m, dict) and m.get("market_id") == market_id for m in markets):
        raise LoadError(f"market_id='{market_id}' not found in {instance_yaml}")


def load_schemas(repo_root: Path) -> dict[str, dict[str, Any]]:
    base = schemas_dir(repo_root)
    return {section: load_json_schema(base / filename) for section, filename in SCHEMA_FILES.items()}


def _load_vendors(vendors_dir: Path, schema: dict[str, Any], input_config: InputConfig) -> None:
    sources: dict[str, str] = {}
    for entry in sorted(vendors_dir.iterdir(), key=lambda p: p.name):
        if not entry.is_dir():
            input_config.warnings.append(f"Ignoring non-directory vendor entry: {entry}")
            continue

        products_path = entry / "products.yaml"
        if not products_path.is_file():
            input_config.warnings.append(f"Missing file: {products_path}")
            continue

        payload = read_yaml_object(products_path)
        validate_against_schema(schema, payload, f"vendors/{entry.name}/products.yaml")

        vendor_id = entry.name
        declared = payload.get("vendor_id")
        if isinstance(declared, str) and declared and declared != entry.name:
            input_config.warnings.append(
                f"vendor_id='{declared}' in {products_path} differs from directory name '{entry.name}'; using '{declared}'"
            )
            vendor_id = declared

        if vendor_id in sources:
            raise ConsistencyError(
                f"vendor_id='{vendor_id}' declared by both vendors/{sources[vendor_id]} and vendors/{entry.name}"
            )
        sources[vendor_id] = entry.name
        input_config.vendors[vendor_id] = payload


def load_input_config(
    config_root: Path,
    repo_root: Path,
    instance_id: str,
    market_id: str,
) -> InputConfig:
    paths = MarketPaths.resolve(config_root, instance_id, market_id)
    assert_instance_lists_market(paths.instance_yaml, instance_id, market_id)
    schemas = load_schemas(repo_root)

    result = InputConfig()

    if paths.market_yaml.is_file():
        market = read_yaml_object(paths.market_yaml)
        validate_against_schema(schemas[SECTION_MARKET], market, "market.yaml")
        declared = market.get("market_id")
        if declared is not None and declared != market_id:
            raise ConsistencyError(
                f"market.yaml market_id='{declared}' does not match --market-id='{market_id}'"
            )
        result.market = market
    else:
        result.warnings.append(f"Missing file: {paths.market_yaml}")

    if paths.products_yaml.is_file():
        products = read_yaml_object(paths.products_yaml)
        validate_against_schema(schemas[SECTION_PRODUCTS], products, "products.yaml")
        result.products = products
    else:
        result.warnings.append(f"Missing file: {paths.products_yaml}")

    if paths.vendors_dir.is_dir():
        _load_vendors(paths.vendors_dir, schemas[SECTION_VENDOR_PRODUCTS], result)

    logger.debug(
        "Loaded market=%s products=%s vendors=%s",
        result.market is not None,
        result.products is not None,
        len(result.vendors),
    )
    return result
