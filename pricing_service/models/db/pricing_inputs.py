from __future__ import annotations
"""SQLAlchemy models for pricing inputs.

These tables are owned by the master-data modules; the recalculation engine
only reads them. Monetary amounts are integer subunits unless noted.
"""
from typing import Any

from sqlalchemy import Integer, String, Boolean, Numeric, JSON
from sqlalchemy.orm import Mapped, mapped_column

from pricing_service.database import Base


class MetalPurity(Base):
    __tablename__ = "metal_purities"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    metal_type_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # per gram
    status: Mapped[bool] = mapped_column(Boolean, default=True)


class StonePrice(Base):
    """Diamond / gemstone price per carat."""
    __tablename__ = "stone_prices"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[bool] = mapped_column(Boolean, default=True)


class MakingCharge(Base):
    __tablename__ = "making_charges"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    metal_type_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    weight_from: Mapped[float] = mapped_column(Numeric(10, 3), nullable=False)
    weight_to: Mapped[float] = mapped_column(Numeric(10, 3), nullable=False)
    # fixed: amount is currency units per gram; otherwise a percentage of metal cost
    is_fixed_pricing: Mapped[bool] = mapped_column(Boolean, default=False)
    amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[bool] = mapped_column(Boolean, default=True)


class OtherCharge(Base):
    __tablename__ = "other_charges"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[bool] = mapped_column(Boolean, default=True)


class MrpMarkup(Base):
    """Single row of MRP markup percentages."""
    __tablename__ = "mrp_markup"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    diamond: Mapped[float] = mapped_column(Numeric(6, 2), default=0)
    gemstone: Mapped[float] = mapped_column(Numeric(6, 2), default=0)
    pearl: Mapped[float] = mapped_column(Numeric(6, 2), default=0)
    making_charge: Mapped[float] = mapped_column(Numeric(6, 2), default=0)


class PricingRule(Base):
    __tablename__ = "pricing_rules"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    product_type: Mapped[str] = mapped_column(String(64), nullable=False)
    conditions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    actions: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
