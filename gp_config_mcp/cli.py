import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Sequence

from gp_config_mcp.errors import ArgumentError
from gp_config_mcp.logging_utils import LOGGER_NAME, configure_logging
from gp_config_mcp.models.options import OPERATIONS, RunOptions
from gp_config_mcp.models.report import OperationReport
from gp_config_mcp.services.operations import run_operation
from gp_config_mcp.settings import default_config_root, detect_repo_root, load_environment

logger = logging.getLogger(LOGGER_NAME)


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        raise ArgumentError(message)


def build_parser(default_root: Path) -> argparse.ArgumentParser:
    parser = _Parser(
        prog="gp-config-mcp",
        description="Reconcile a market's YAML configuration with the database.",
    )
    parser.add_argument("--instance-id", required=True)
    parser.add_argument("--market-id", required=True)
    parser.add_argument("--operation", required=True, choices=OPERATIONS)
    parser.add_argument("--config-root", default=str(default_root))
    parser.add_argument("--db-url", default=None, help="Falls back to env DATABASE_URL")
    parser.add_argument("--output-path", default=None, help="export only")
    parser.add_argument("--confirm", action="store_true")
    parser.add_argument("--force", action="store_true")
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--log-level", choices=["debug", "info", "warn"], default="info")
    return parser


def resolve_options(argv: Sequence[str] | None = None, cwd: Path | None = None) -> RunOptions:
    repo_root = detect_repo_root(cwd)
    load_environment(repo_root)
    args = build_parser(default_config_root(repo_root, cwd)).parse_args(argv)

    for name in ("instance_id", "market_id"):
        if not getattr(args, name).strip():
            raise ArgumentError(f"--{name.replace('_', '-')} must not be empty")

    db_url = args.db_url or os.getenv("DATABASE_URL")
    if not db_url:
        raise ArgumentError("DATABASE_URL is required (use --db-url or env DATABASE_URL).")

    return RunOptions(
        instance_id=args.instance_id,
        market_id=args.market_id,
        operation=args.operation,
        config_root=Path(args.config_root).resolve(),
        repo_root=repo_root,
        db_url=db_url,
        output_path=Path(args.output_path) if args.output_path else None,
        confirm=args.confirm,
        force=args.force,
        dry_run=args.dry_run,
        log_level=args.log_level,
    )


def run_cli(argv: Sequence[str] | None = None, prompt: Callable[[str], str] | None = None) -> OperationReport:
    options = resolve_options(argv)
    configure_logging(options.log_level)
    return run_operation(options, prompt)


def main(argv: Sequence[str] | None = None) -> int:
    try:
        report = run_cli(argv)
    except KeyboardInterrupt:
        sys.stderr.write(json.dumps({"ok": False, "error": "Interrupted"}, indent=2) + "\n")
        return 1
    except Exception as exc:
        logger.debug("Run failed", exc_info=True)
        sys.stderr.write(json.dumps({"ok": False, "error": str(exc)}, indent=2) + "\n")
        return 1

    sys.stdout.write(json.dumps(report.to_output(), indent=2) + "\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
