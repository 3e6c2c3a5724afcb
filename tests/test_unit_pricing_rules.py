from pricing_service.services.pricing_rules import matches_conditions, metal_weight


PRODUCT = {
    "attributes": {
        "categories": [{"id": 3}, {"id": 4}],
        "tags": [{"id": 20}],
    },
    "stone": {
        "hasDiamond": True,
        "diamond": {"entries": [{"totalCarat": 0.25}, {"totalCarat": 0.5}]},
        "hasPearl": False,
    },
}
VARIANT = {"metalType": 1, "metalColor": 2, "metalPurity": 5, "metalWeight": 4.2, "diamondClarityColor": 9}


def test_rule_without_conditions_never_applies():
    assert matches_conditions([], VARIANT, PRODUCT) is False
    assert matches_conditions(None, VARIANT, PRODUCT) is False


def test_category_all_vs_any():
    all_of = {"type": "category", "value": {"categoryIds": [3, 7]}}
    any_of = {"type": "category", "value": {"categoryIds": [3, 7], "matchType": "any"}}
    assert matches_conditions([all_of], VARIANT, PRODUCT) is False
    assert matches_conditions([any_of], VARIANT, PRODUCT) is True


def test_every_condition_must_match():
    conditions = [
        {"type": "metal_type", "value": {"metalTypeIds": [1]}},
        {"type": "tags", "value": {"tagIds": [20]}},
        {"type": "metal_color", "value": {"metalColorIds": [8]}},
    ]
    assert matches_conditions(conditions, VARIANT, PRODUCT) is False
    assert matches_conditions(conditions[:2], VARIANT, PRODUCT) is True


def test_stone_ranges_require_the_stone():
    carat = {"type": "diamond_carat", "value": {"from": 0.5, "to": 1.0}}
    assert matches_conditions([carat], VARIANT, PRODUCT) is True
    pearl = {"type": "pearl_gram", "value": {"from": 0, "to": 10}}
    assert matches_conditions([pearl], VARIANT, PRODUCT) is False
    clarity = {"type": "diamond_clarity_color", "value": {"diamondClarityColorIds": [9]}}
    assert matches_conditions([clarity], VARIANT, PRODUCT) is True
    assert matches_conditions([clarity], VARIANT, {"stone": {"hasDiamond": False}}) is False


def test_metal_weight_range_and_legacy_location():
    cond = {"type": "metal_weight", "value": {"from": 4, "to": 5}}
    assert matches_conditions([cond], VARIANT, PRODUCT) is True
    legacy = {"weights": {"metal": {"grams": 4.5}}}
    assert metal_weight(legacy) == 4.5
    assert matches_conditions([cond], legacy, PRODUCT) is True
    assert metal_weight({}) == 0.0


def test_unknown_condition_type_does_not_match():
    assert matches_conditions([{"type": "moon_phase", "value": {}}], VARIANT, PRODUCT) is False
