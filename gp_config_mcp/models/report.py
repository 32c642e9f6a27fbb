from typing import Any

from pydantic import BaseModel, Field

from gp_config_mcp.models.options import Operation


class OperationReport(BaseModel):
    ok: bool = True
    operation: Operation
    instance_id: str
    market_id: str
    dry_run: bool = False
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    warnings: list[str] = Field(default_factory=list)
    output_path: str | None = None
    exported_tables: list[str] | None = None

    def to_output(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
