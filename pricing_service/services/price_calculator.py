"""Default price computation for one product variant.

Pure and deterministic: the same variant, product bill of materials and
pricing inputs always produce the same prices. The recalculation engine
treats this as a black box and accepts any callable with the
``PriceFunction`` shape.

All amounts are integer subunits. Rounding follows half-up semantics so
stored prices line up with what the storefront computes.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from typing import Any, Callable, Mapping

from pricing_service.config import CURRENCY_SETTINGS
from pricing_service.models.db.enums import ProductType
from pricing_service.services.pricing_inputs import PricingInputs
from pricing_service.services.pricing_rules import matches_conditions, metal_weight


@dataclass(frozen=True, slots=True)
class PriceComponents:
    metal_price: int
    making_charge: int
    diamond_price: int
    gemstone_price: int
    pearl_price: int
    final_price_without_tax: int
    tax_amount: int
    final_price_with_tax: int
    tax_included: bool
    final_price: int


@dataclass(frozen=True, slots=True)
class VariantPricing:
    cost_price: PriceComponents
    selling_price: PriceComponents
    compare_at_price: PriceComponents

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {
            "cost_price": asdict(self.cost_price),
            "selling_price": asdict(self.selling_price),
            "compare_at_price": asdict(self.compare_at_price),
        }


PriceFunction = Callable[[str, Mapping[str, Any], Mapping[str, Any], PricingInputs], VariantPricing]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _as_id(value: Any) -> Any:
    # Metadata arrives as JSON; ids may be serialized as strings.
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


def _stone_cost(entries: list[Mapping[str, Any]], choice_key: str, chosen: Any, inputs: PricingInputs) -> int:
    total = 0
    for entry in entries:
        match = next((p for p in entry.get("pricings") or [] if p.get(choice_key) == chosen), None)
        if match is None:
            continue
        stone_price = inputs.stone_prices.get(_as_id(match.get("pricingId")))
        if stone_price is not None:
            total += round_half_up(stone_price * float(entry.get("totalCarat") or 0))
    return total


def _components(metal: int, making: int, diamond: int, gemstone: int, pearl: int) -> PriceComponents:
    include_tax = bool(CURRENCY_SETTINGS["include_tax"])
    tax_rate = float(CURRENCY_SETTINGS["tax_rate_percent"]) / 100 if include_tax else 0.0  # type: ignore[arg-type]
    total = metal + making + diamond + gemstone + pearl
    tax = round_half_up(total * tax_rate)
    return PriceComponents(
        metal_price=metal,
        making_charge=making,
        diamond_price=diamond,
        gemstone_price=gemstone,
        pearl_price=pearl,
        final_price_without_tax=total,
        tax_amount=tax,
        final_price_with_tax=total + tax,
        tax_included=include_tax,
        final_price=total + tax if include_tax else total,
    )


def calculate_jewellery_pricing(
    variant_meta: Mapping[str, Any],
    product_meta: Mapping[str, Any],
    inputs: PricingInputs,
) -> VariantPricing:
    subunits = int(CURRENCY_SETTINGS["subunits"])  # type: ignore[arg-type]
    weight = metal_weight(variant_meta)
    metal_type_id = _as_id(variant_meta.get("metalType"))
    stone = product_meta.get("stone") or {}

    purity = inputs.metal_purities.get(_as_id(variant_meta.get("metalPurity")))
    metal_cost = round_half_up(purity.price * weight) if purity else 0

    band = next((b for b in inputs.making_charges if b.covers(metal_type_id, weight)), None)
    base_making = 0
    if band is not None:
        if band.is_fixed_pricing:
            base_making = round_half_up(weight * band.amount * subunits)
        else:
            base_making = round_half_up((band.amount / 100) * metal_cost)
    making_cost = base_making + inputs.other_charges_total

    diamond_cost = 0
    diamond_choice = variant_meta.get("diamondClarityColor")
    if diamond_choice:
        diamond_entries = (stone.get("diamond") or {}).get("entries") or []
        diamond_cost = _stone_cost(diamond_entries, "clarityColorId", diamond_choice, inputs)

    gemstone_cost = 0
    gemstone_choice = variant_meta.get("gemstoneColor")
    if gemstone_choice:
        gemstone_entries = (stone.get("gemstone") or {}).get("entries") or []
        gemstone_cost = _stone_cost(gemstone_entries, "colorId", gemstone_choice, inputs)

    pearl_cost = 0
    if stone.get("hasPearl"):
        for entry in (stone.get("pearl") or {}).get("entries") or []:
            if entry.get("amount"):
                pearl_cost += round_half_up(float(entry["amount"]) * subunits)

    making_markup = diamond_markup = gemstone_markup = pearl_markup = 0
    for rule in inputs.pricing_rules:
        if rule.product_type != ProductType.JEWELLERY_DEFAULT.value:
            continue
        if not matches_conditions(rule.conditions, variant_meta, product_meta):
            continue
        actions = rule.actions
        if float(actions.get("makingChargeMarkup") or 0) > 0:
            making_markup += round_half_up(making_cost * float(actions["makingChargeMarkup"]) / 100)
        if float(actions.get("diamondMarkup") or 0) > 0:
            diamond_markup += round_half_up(diamond_cost * float(actions["diamondMarkup"]) / 100)
        if float(actions.get("gemstoneMarkup") or 0) > 0:
            gemstone_markup += round_half_up(gemstone_cost * float(actions["gemstoneMarkup"]) / 100)
        if float(actions.get("pearlMarkup") or 0) > 0:
            pearl_markup += round_half_up(pearl_cost * float(actions["pearlMarkup"]) / 100)

    making_selling = making_cost + making_markup
    diamond_selling = diamond_cost + diamond_markup
    gemstone_selling = gemstone_cost + gemstone_markup
    pearl_selling = pearl_cost + pearl_markup

    mrp = inputs.mrp_markup
    return VariantPricing(
        cost_price=_components(metal_cost, making_cost, diamond_cost, gemstone_cost, pearl_cost),
        selling_price=_components(metal_cost, making_selling, diamond_selling, gemstone_selling, pearl_selling),
        # metal is never marked up
        compare_at_price=_components(
            metal_cost,
            round_half_up(making_selling * (1 + mrp.making_charge / 100)),
            round_half_up(diamond_selling * (1 + mrp.diamond / 100)),
            round_half_up(gemstone_selling * (1 + mrp.gemstone / 100)),
            round_half_up(pearl_selling * (1 + mrp.pearl / 100)),
        ),
    )


def calculate_variant_pricing(
    product_type: str,
    variant_meta: Mapping[str, Any],
    product_meta: Mapping[str, Any],
    inputs: PricingInputs,
) -> VariantPricing:
    """Price one variant. Only JEWELLERY_DEFAULT exists today; unknown types fall back to it."""
    return calculate_jewellery_pricing(variant_meta, product_meta, inputs)


__all__ = [
    "PriceComponents",
    "VariantPricing",
    "PriceFunction",
    "round_half_up",
    "calculate_jewellery_pricing",
    "calculate_variant_pricing",
]
