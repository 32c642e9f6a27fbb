from sqlalchemy import JSON, Column, DateTime, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from gp_config_mcp.db.base import Base

STORAGE_TABLE = "gp_market_runtime_config"

SECTION_MARKET = "market"
SECTION_PRODUCTS = "products"
SECTION_VENDOR_PRODUCTS = "vendor_products"


class MarketRuntimeConfig(Base):
    __tablename__ = STORAGE_TABLE

    instance_id = Column(Text, primary_key=True)
    market_id = Column(Text, primary_key=True)
    section = Column(Text, primary_key=True)       # market / products / vendor_products
    record_key = Column(Text, primary_key=True)    # section name, or vendor_id
    data = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
