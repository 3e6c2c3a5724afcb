"""Central Enum definitions for recalculation and catalog states.

These replace scattered string literals to ensure consistency across
DB models, schemas, and job logic.
"""
from __future__ import annotations
import enum


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"

# ------------------------ Price Recalculation Enums ------------------------ #

class JobStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


class TriggerSource(str, enum.Enum):
    """Which kind of pricing input changed."""
    METAL_PURITY = "metal_purity"
    DIAMOND_PRICING = "diamond_pricing"
    DIAMOND_PRICING_BULK = "diamond_pricing_bulk"
    GEMSTONE_PRICING = "gemstone_pricing"
    GEMSTONE_PRICING_BULK = "gemstone_pricing_bulk"
    MAKING_CHARGE = "making_charge"
    OTHER_CHARGE = "other_charge"
    MRP_MARKUP = "mrp_markup"
    PRICING_RULE = "pricing_rule"
    MANUAL = "manual"

# ----------------------------- Catalog Enums ----------------------------- #

class ProductStatus(str, enum.Enum):
    DRAFT = "draft"
    INACTIVE = "inactive"
    ACTIVE = "active"
    ARCHIVED = "archived"


class ProductType(str, enum.Enum):
    JEWELLERY_DEFAULT = "JEWELLERY_DEFAULT"

__all__ = [
    "UserRole",
    "JobStatus",
    "TriggerSource",
    "ProductStatus",
    "ProductType",
]
