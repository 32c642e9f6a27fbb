import re
import sys
from typing import Callable

from gp_config_mcp.errors import SafetyError
from gp_config_mcp.models.options import DESTRUCTIVE_OPERATIONS, RunOptions
from gp_config_mcp.settings import PROD_OVERRIDE_ENV, prod_mutations_allowed

PROD_INSTANCE_RE = re.compile(r"(prod|production)$", re.IGNORECASE)


def is_prod_like(instance_id: str) -> bool:
    return PROD_INSTANCE_RE.search(instance_id or "") is not None


def ensure_safe_destructive_operation(options: RunOptions) -> None:
    if options.operation not in DESTRUCTIVE_OPERATIONS:
        return
    if is_prod_like(options.instance_id) and not prod_mutations_allowed():
        raise SafetyError(
            "Destructive operations are blocked for prod/production instances. "
            f"Set {PROD_OVERRIDE_ENV}=true to override."
        )


def require_confirm_flags(options: RunOptions) -> None:
    if options.operation in DESTRUCTIVE_OPERATIONS and not (options.confirm or options.force):
        raise SafetyError(f"Operation {options.operation} requires --confirm or --force.")


def terminal_prompt(message: str) -> str:
    """Ask on stderr and read one line from stdin, keeping stdout for the report."""
    sys.stderr.write(message)
    sys.stderr.flush()
    line = sys.stdin.readline()
    if not line:
        raise EOFError
    return line


def require_interactive_delete_confirmation(
    options: RunOptions,
    prompt: Callable[[str], str] | None = None,
) -> None:
    if options.operation != "delete" or options.force:
        return

    prompt = prompt or terminal_prompt
    try:
        entered = prompt(f"Type market_id '{options.market_id}' to confirm delete: ")
    except EOFError:
        raise SafetyError("Interactive confirmation failed: no input received (use --force when stdin is not a TTY).")

    if (entered or "").strip() != options.market_id:
        raise SafetyError("Interactive confirmation failed: market_id mismatch.")


def run_safety_gate(options: RunOptions, prompt: Callable[[str], str] | None = None) -> None:
    ensure_safe_destructive_operation(options)
    require_confirm_flags(options)
    require_interactive_delete_confirmation(options, prompt)
