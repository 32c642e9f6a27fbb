"""Market configuration processor (gp-config-mcp)."""

__version__ = "1.0.0"
