"""Pricing rule condition matching.

A rule applies only when every one of its conditions matches the variant /
product pair. A rule without conditions never applies.
"""
from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Sequence


def _ids(entries: Iterable[Mapping[str, Any]] | None) -> set[Any]:
    return {e.get("id") for e in (entries or []) if isinstance(e, Mapping)}


def _match_ids(value: Mapping[str, Any], key: str, present: set[Any]) -> bool:
    wanted = value.get(key) or []
    if value.get("matchType") == "any":
        return any(i in present for i in wanted)
    return all(i in present for i in wanted)


def _in_range(total: float, value: Mapping[str, Any]) -> bool:
    return float(value.get("from", 0)) <= total <= float(value.get("to", 0))


def _stone(product_meta: Mapping[str, Any]) -> Mapping[str, Any]:
    return product_meta.get("stone") or {}


def _stone_total(product_meta: Mapping[str, Any], kind: str, field_name: str) -> float:
    entries = (_stone(product_meta).get(kind) or {}).get("entries") or []
    return sum(float(e.get(field_name) or 0) for e in entries)


def metal_weight(variant_meta: Mapping[str, Any]) -> float:
    """Metal weight in grams; older variants keep it under ``weights.metal.grams``."""
    weight = variant_meta.get("metalWeight")
    if not weight:
        weight = ((variant_meta.get("weights") or {}).get("metal") or {}).get("grams")
    return float(weight or 0)


def _attribute_ids(product_meta: Mapping[str, Any], name: str) -> set[Any]:
    return _ids((product_meta.get("attributes") or {}).get(name))


def _category(value, variant_meta, product_meta) -> bool:
    return _match_ids(value, "categoryIds", _attribute_ids(product_meta, "categories"))


def _tags(value, variant_meta, product_meta) -> bool:
    return _match_ids(value, "tagIds", _attribute_ids(product_meta, "tags"))


def _badges(value, variant_meta, product_meta) -> bool:
    return _match_ids(value, "badgeIds", _attribute_ids(product_meta, "badges"))


def _metal_type(value, variant_meta, product_meta) -> bool:
    return variant_meta.get("metalType") in (value.get("metalTypeIds") or [])


def _metal_color(value, variant_meta, product_meta) -> bool:
    return variant_meta.get("metalColor") in (value.get("metalColorIds") or [])


def _metal_purity(value, variant_meta, product_meta) -> bool:
    return variant_meta.get("metalPurity") in (value.get("metalPurityIds") or [])


def _diamond_clarity_color(value, variant_meta, product_meta) -> bool:
    chosen = variant_meta.get("diamondClarityColor")
    if not _stone(product_meta).get("hasDiamond") or not chosen:
        return False
    return chosen in (value.get("diamondClarityColorIds") or [])


def _diamond_carat(value, variant_meta, product_meta) -> bool:
    if not _stone(product_meta).get("hasDiamond"):
        return False
    return _in_range(_stone_total(product_meta, "diamond", "totalCarat"), value)


def _metal_weight(value, variant_meta, product_meta) -> bool:
    return _in_range(metal_weight(variant_meta), value)


def _gemstone_carat(value, variant_meta, product_meta) -> bool:
    if not _stone(product_meta).get("hasGemstone"):
        return False
    return _in_range(_stone_total(product_meta, "gemstone", "totalCarat"), value)


def _pearl_gram(value, variant_meta, product_meta) -> bool:
    if not _stone(product_meta).get("hasPearl"):
        return False
    return _in_range(_stone_total(product_meta, "pearl", "totalGrams"), value)


_MATCHERS: dict[str, Callable[[Mapping[str, Any], Mapping[str, Any], Mapping[str, Any]], bool]] = {
    "category": _category,
    "tags": _tags,
    "badges": _badges,
    "metal_type": _metal_type,
    "metal_color": _metal_color,
    "metal_purity": _metal_purity,
    "diamond_clarity_color": _diamond_clarity_color,
    "diamond_carat": _diamond_carat,
    "metal_weight": _metal_weight,
    "gemstone_carat": _gemstone_carat,
    "pearl_gram": _pearl_gram,
}


def matches_conditions(
    conditions: Sequence[Mapping[str, Any]] | None,
    variant_meta: Mapping[str, Any],
    product_meta: Mapping[str, Any],
) -> bool:
    if not conditions:
        return False
    for cond in conditions:
        matcher = _MATCHERS.get(cond.get("type", ""))
        # Unknown condition types never match.
        if matcher is None or not matcher(cond.get("value") or {}, variant_meta, product_meta):
            return False
    return True


__all__ = ["matches_conditions", "metal_weight"]
