from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict

Operation = Literal["fill", "overwrite", "export", "delete"]
LogLevel = Literal["debug", "info", "warn"]

OPERATIONS = ("fill", "overwrite", "export", "delete")
DESTRUCTIVE_OPERATIONS = ("overwrite", "delete")


class RunOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    instance_id: str
    market_id: str
    operation: Operation
    config_root: Path
    repo_root: Path
    db_url: str
    output_path: Path | None = None
    confirm: bool = False
    force: bool = False
    dry_run: bool = False
    log_level: LogLevel = "info"
