"""Read-only snapshot of every pricing input a recalculation run needs.

Loaded once at the start of a run so every product in that run is priced
against the same settings. All containers are immutable.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from pricing_service.models.db import MetalPurity, StonePrice, MakingCharge, OtherCharge, MrpMarkup, PricingRule
from pricing_service.utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class MetalPurityRate:
    id: int
    metal_type_id: int
    price: int


@dataclass(frozen=True, slots=True)
class MakingChargeBand:
    id: int
    metal_type_id: int
    weight_from: float
    weight_to: float
    is_fixed_pricing: bool
    amount: float

    def covers(self, metal_type_id: Any, weight: float) -> bool:
        return self.metal_type_id == metal_type_id and self.weight_from <= weight <= self.weight_to


@dataclass(frozen=True, slots=True)
class MarkupPercentages:
    diamond: float = 0.0
    gemstone: float = 0.0
    pearl: float = 0.0
    making_charge: float = 0.0


@dataclass(frozen=True, slots=True)
class PricingRuleSpec:
    id: int
    name: str
    product_type: str
    conditions: tuple[Mapping[str, Any], ...]
    actions: Mapping[str, Any]


@dataclass(frozen=True)
class PricingInputs:
    metal_purities: Mapping[int, MetalPurityRate] = field(default_factory=lambda: MappingProxyType({}))
    stone_prices: Mapping[int, int] = field(default_factory=lambda: MappingProxyType({}))
    making_charges: tuple[MakingChargeBand, ...] = ()
    other_charge_amounts: tuple[int, ...] = ()
    mrp_markup: MarkupPercentages = MarkupPercentages()
    pricing_rules: tuple[PricingRuleSpec, ...] = ()

    @property
    def other_charges_total(self) -> int:
        return sum(self.other_charge_amounts)


def load_pricing_inputs(session: Session) -> PricingInputs:
    """Read every active pricing input. Any database error propagates."""
    purities = session.scalars(
        select(MetalPurity).where(MetalPurity.status.is_(True)).order_by(MetalPurity.id)
    ).all()
    stones = session.scalars(
        select(StonePrice).where(StonePrice.status.is_(True)).order_by(StonePrice.id)
    ).all()
    making = session.scalars(
        select(MakingCharge).where(MakingCharge.status.is_(True)).order_by(MakingCharge.id)
    ).all()
    others = session.scalars(
        select(OtherCharge).where(OtherCharge.status.is_(True)).order_by(OtherCharge.id)
    ).all()
    markup_row = session.scalars(select(MrpMarkup).order_by(MrpMarkup.id).limit(1)).first()
    rules = session.scalars(select(PricingRule).order_by(PricingRule.id)).all()

    if markup_row is None:
        logger.warning("MRP markup row missing; compare-at prices will equal selling prices")
        markup = MarkupPercentages()
    else:
        markup = MarkupPercentages(
            diamond=float(markup_row.diamond or 0),
            gemstone=float(markup_row.gemstone or 0),
            pearl=float(markup_row.pearl or 0),
            making_charge=float(markup_row.making_charge or 0),
        )

    inputs = PricingInputs(
        metal_purities=MappingProxyType({
            p.id: MetalPurityRate(id=p.id, metal_type_id=p.metal_type_id, price=int(p.price or 0))
            for p in purities
        }),
        stone_prices=MappingProxyType({s.id: int(s.price or 0) for s in stones}),
        making_charges=tuple(
            MakingChargeBand(
                id=m.id,
                metal_type_id=m.metal_type_id,
                weight_from=float(m.weight_from),
                weight_to=float(m.weight_to),
                is_fixed_pricing=bool(m.is_fixed_pricing),
                amount=float(m.amount),
            )
            for m in making
        ),
        other_charge_amounts=tuple(int(o.amount or 0) for o in others),
        mrp_markup=markup,
        pricing_rules=tuple(
            PricingRuleSpec(
                id=r.id,
                name=r.name,
                product_type=r.product_type,
                conditions=tuple(r.conditions or ()),
                actions=MappingProxyType(dict(r.actions or {})),
            )
            for r in rules
        ),
    )
    logger.debug(
        "Pricing inputs loaded",
        metal_purities=len(inputs.metal_purities),
        stone_prices=len(inputs.stone_prices),
        making_charges=len(inputs.making_charges),
        other_charges=len(inputs.other_charge_amounts),
        pricing_rules=len(inputs.pricing_rules),
    )
    return inputs


__all__ = [
    "MetalPurityRate",
    "MakingChargeBand",
    "MarkupPercentages",
    "PricingRuleSpec",
    "PricingInputs",
    "load_pricing_inputs",
]
