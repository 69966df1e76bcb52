from storefront.services.variants import (
    attribute_matches,
    find_matching_variant,
    group_products_by_name,
    resolve_variant_id,
    size_and_color,
)


def test_attribute_matches_comma_separated_and_case():
    assert attribute_matches("Yellow, Green", "green")
    assert attribute_matches(["S", "M"], "m")
    assert attribute_matches(7, "7")
    assert not attribute_matches("Yellow, Green", "Red")
    assert not attribute_matches(None, "Red")


def test_find_matching_variant_requires_every_attribute():
    variants = [
        {"_id": 1, "attributes": {"color": "Red", "size": "6"}},
        {"_id": 2, "attributes": {"color": "Red", "size": "7"}},
    ]
    assert find_matching_variant(variants, {"color": "red", "size": "7"})["_id"] == 2
    assert find_matching_variant(variants, {"color": "Blue"}) is None
    assert find_matching_variant(variants, {}) is None


def test_variant_missing_a_selected_key_does_not_match():
    variants = [
        {"_id": 1, "attributes": {"color": "Red"}},
        {"_id": 2, "attributes": {"color": "Red", "size": "7"}},
    ]
    assert find_matching_variant(variants, {"color": "red", "size": "7"})["_id"] == 2
    assert find_matching_variant(variants[:1], {"color": "red", "size": "7"}) is None


def test_resolve_variant_id_picks_sibling(db, make_product):
    six = make_product(attributes={"color": "Yellow, Green", "size(inch)": "6"})
    seven = make_product(attributes={"color": "Yellow, Green", "size(inch)": "7"})
    make_product(name="Other Ring", attributes={"color": "Green", "size(inch)": "7"})

    assert resolve_variant_id(db, six, {"color": "Green", "size(inch)": "7"}) == seven["_id"]
    assert resolve_variant_id(db, seven, {"size(inch)": "6"}) == six["_id"]


def test_resolve_variant_id_keeps_product_without_match(db, make_product):
    ring = make_product(attributes={"size(inch)": "6"})
    assert resolve_variant_id(db, ring, {"size(inch)": "9"}) == ring["_id"]
    assert resolve_variant_id(db, ring, None) == ring["_id"]


def test_group_products_by_name(make_product):
    a = make_product(price=25.0, attributes={"color": "Red, Blue"})
    b = make_product(price=20.0, attributes={"color": "Green"})
    groups = group_products_by_name([a, b])
    assert len(groups) == 1
    group = groups[0]
    assert group["base_price"] == 20.0
    assert group["all_attributes"]["color"] == ["Red", "Blue", "Green"]
    assert [v["product_id"] for v in group["variants"]] == [str(a["_id"]), str(b["_id"])]


def test_size_and_color():
    assert size_and_color({"Size(inch)": "7", "Color": ["Gold", "Silver"]}) == {"size": "7", "color": "Gold"}
    assert size_and_color(None) == {"size": None, "color": None}
