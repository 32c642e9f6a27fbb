import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_SENTINELS = ("_bmad", "specs")

SCHEMA_DIR_PARTS = ("specs", "contracts", "config", "schemas")
SCHEMA_FILES = {
    "market": "market-runtime-config.v1.schema.json",
    "products": "products-catalog.v1.schema.json",
    "vendor_products": "vendor-products-catalog.v1.schema.json",
}
EXPORT_SCHEMA_VERSION = "market-runtime-config.v1"

PROD_OVERRIDE_ENV = "GP_ALLOW_PROD_MUTATIONS"


def detect_repo_root(start_dir: Path | None = None) -> Path:
    """Walk up from ``start_dir`` to the first ancestor holding ``_bmad`` or ``specs``."""
    start = Path(start_dir or Path.cwd()).resolve()
    for candidate in (start, *start.parents):
        if any((candidate / name).exists() for name in ROOT_SENTINELS):
            return candidate
    return start


def default_config_root(repo_root: Path, cwd: Path | None = None) -> Path:
    cwd = Path(cwd or Path.cwd())
    candidates = [
        repo_root / "GP" / "config",
        cwd / "GP" / "config",
        cwd / "config",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate.resolve()
    return candidates[0].resolve()


def schemas_dir(repo_root: Path) -> Path:
    return repo_root.joinpath(*SCHEMA_DIR_PARTS)


def load_environment(repo_root: Path) -> None:
    load_dotenv()
    load_dotenv(repo_root / ".env")


def prod_mutations_allowed() -> bool:
    return os.getenv(PROD_OVERRIDE_ENV) == "true"
