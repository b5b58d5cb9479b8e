import pytest
from pydantic import ValidationError

from app.schemas.catalog import ItemStatus
from app.schemas.meli import MeliSizeChart, NumericMeasure, TextMeasure
from app.services.meli.transformer import (
    extract_size_chart_id,
    infer_category_name,
    map_currency,
    map_status,
    measure_to_int,
    parse_item,
    transform_item,
    transform_safely,
)
from tests.factories import IMPORTED_AT, make_raw_item, make_size_chart

SHOP_ID = "shop-1"
OWNER_ID = "owner-1"
BATCH_ID = "meli-owner-1"


def _transform(raw: dict, size_chart: MeliSizeChart | None = None):
    return transform_item(
        parse_item(raw),
        SHOP_ID,
        OWNER_ID,
        BATCH_ID,
        size_chart=size_chart,
        imported_at=IMPORTED_AT,
    )


def test_variations_grouped_by_color_first_is_main(raw_item):
    item = _transform(raw_item)

    assert [v.color_id for v in item.variants] == ["52049", "52055"]
    black, white = item.variants
    assert black.is_main is True
    assert white.is_main is False
    assert black.color_name == "Negro"
    assert black.color_hex == "#000000"
    assert [(s.size_label, s.stock, s.sku) for s in black.size_stock] == [
        ("M", 3, "UP-1"),
        ("L", 5, "UP-2"),
    ]
    assert [(s.size_label, s.stock, s.sku) for s in white.size_stock] == [("M", 2, "UP-3")]
    assert black.images == ["https://img.test/P1.jpg"]
    assert white.images == ["https://img.test/P2.jpg"]


def test_exactly_one_main_variant(raw_item):
    item = _transform(raw_item)
    assert sum(1 for v in item.variants if v.is_main) == 1


def test_item_without_variations_gets_default_variant():
    item = _transform(make_raw_item(variations=[]))

    assert len(item.variants) == 1
    variant = item.variants[0]
    assert variant.color_id == "default"
    assert variant.color_name == "Default"
    assert variant.is_main is True
    assert variant.size_stock == []
    assert variant.images == ["https://img.test/P1.jpg", "https://img.test/P2.jpg"]
    assert item.source.external_sku == ""


def test_color_without_value_id_is_keyed_by_name():
    raw = make_raw_item()
    for variation in raw["variations"]:
        variation["attribute_combinations"][0]["value_id"] = None

    item = _transform(raw)

    assert [v.color_id for v in item.variants] == ["Negro", "Blanco"]


def test_variation_without_color_or_size():
    raw = make_raw_item(
        variations=[
            {
                "id": 1,
                "attribute_combinations": [],
                "available_quantity": 4,
                "picture_ids": ["missing"],
                "user_product_id": "UP-9",
            }
        ]
    )

    item = _transform(raw)

    assert len(item.variants) == 1
    assert item.variants[0].color_id == "default"
    assert item.variants[0].size_stock == []
    # Unknown picture ids fall back to every item picture
    assert len(item.variants[0].images) == 2
    assert item.source.external_sku == "UP-9"


def test_attributes_filtered_and_sale_terms_appended(raw_item):
    item = _transform(raw_item)

    ids = [a.id for a in item.attributes.meli_attributes]
    assert ids == ["BRAND", "GENDER", "COMPOSITION", "sale_term_warranty_type"]
    assert item.attributes.gender == "mujer"
    assert item.attributes.composition == "100% algodón"
    assert item.attributes.condition == "new"
    sale_term = item.attributes.meli_attributes[-1]
    assert sale_term.value_name == "Garantía del vendedor"


def test_used_condition_is_pre_owned():
    item = _transform(make_raw_item(condition="used"))
    assert item.attributes.condition == "pre-owned"


def test_attribute_value_falls_back_to_first_value_name():
    raw = make_raw_item(
        attributes=[
            {"id": "BRAND", "name": "Marca", "value_name": None, "values": [{"id": "1", "name": "Acme"}]},
        ]
    )
    item = _transform(raw)
    assert item.description == "Acme - Remera lisa"


def test_description_without_brand_is_title():
    item = _transform(make_raw_item(attributes=[]))
    assert item.description == "Remera lisa"
    assert item.attributes.gender == ""


@pytest.mark.parametrize(
    "meli_status, expected",
    [
        ("active", ItemStatus.ACTIVE),
        ("paused", ItemStatus.INACTIVE),
        ("inactive", ItemStatus.INACTIVE),
        ("closed", ItemStatus.INACTIVE),
        ("under_review", ItemStatus.ACTIVE),
        ("", ItemStatus.ACTIVE),
    ],
)
def test_status_mapping(meli_status, expected):
    assert map_status(meli_status) == expected


@pytest.mark.parametrize(
    "domain_id, expected",
    [
        ("MLA-SNEAKERS_SHOES", "Calzado"),
        ("MLA-FOOTWEAR", "Calzado"),
        ("MLA-FASHION_ACCESSORIES", "Accesorios"),
        ("MLA-T_SHIRTS", "Ropa"),
        ("", "Ropa"),
    ],
)
def test_category_inferred_from_domain(domain_id, expected):
    assert infer_category_name(domain_id) == expected


def test_category_id_is_stable_per_name():
    shoes = _transform(make_raw_item(domain_id="MLA-SHOES"))
    boots = _transform(make_raw_item("MLA200", domain_id="MLA-FOOTWEAR"))
    shirt = _transform(make_raw_item(domain_id="MLA-T_SHIRTS"))

    assert shoes.category.name == "Calzado"
    assert shoes.category.id == boots.category.id
    assert shoes.category.id != shirt.category.id


def test_ars_uses_local_separators():
    currency = map_currency("ARS")
    assert currency.symbol == "$"
    assert currency.decimal_divider == ","
    assert currency.thousands_divider == "."


@pytest.mark.parametrize("code", ["USD", "BRL"])
def test_other_published_codes_use_fallback(code):
    currency = map_currency(code)
    assert currency.id == code
    assert currency.symbol == code
    assert currency.decimal_divider == "."
    assert currency.thousands_divider == ","


def test_unknown_currency_falls_back_to_code():
    item = _transform(make_raw_item(currency_id="XYZ"))

    assert item.price.currency.id == "XYZ"
    assert item.price.currency.symbol == "XYZ"
    assert item.price.currency.decimal_divider == "."
    assert item.price.currency.thousands_divider == ","
    assert item.price.shop_id == SHOP_ID
    assert item.price.amount == 15000.0


def test_null_quantities_and_prices_become_zero():
    raw = make_raw_item(price=None, available_quantity=None)
    raw["variations"][0].update(price=None, available_quantity=None, sold_quantity=None)

    item = _transform(raw)

    assert item.price.amount == 0
    assert item.variants[0].size_stock[0].size_label == "M"
    assert item.variants[0].size_stock[0].stock == 0
    assert item.variants[0].size_stock[1].stock == 5


def test_default_delivery(raw_item):
    item = _transform(raw_item)

    assert item.delivery.fragile is False
    assert item.delivery.dimensions.weight == 500
    assert item.delivery.dimensions.length == 30
    assert item.delivery.dimensions.height == 5
    assert item.delivery.dimensions.width == 25


def test_source_provenance(raw_item):
    item = _transform(raw_item)

    assert item.source.source_type == "meli"
    assert item.source.external_id == "MLA100"
    assert item.source.external_sku == "UP-1"
    assert item.source.batch_id == BATCH_ID
    assert item.source.imported_at == IMPORTED_AT
    assert item.source.etl_version == "1.0.0"
    assert item.source.transform_metadata == {
        "original_domain_id": "MLA-T_SHIRTS",
        "original_category_id": "MLA109282",
        "original_status": "active",
        "original_condition": "new",
        "variations_count": "3",
        "pictures_count": "2",
        "attributes_count": "6",
    }


def test_transform_is_deterministic(raw_item):
    first = _transform(raw_item)
    second = _transform(raw_item)

    assert first == second
    assert first.id != _transform(make_raw_item("MLA999")).id


def test_no_size_guide_without_chart(raw_item):
    assert _transform(raw_item).size_guide is None


def test_size_guide_from_chart():
    raw = make_raw_item()
    raw["attributes"].append(
        {"id": "SIZE_GRID_ID", "name": "ID de la guía de talles", "value_id": None, "value_name": "3947"}
    )
    chart = MeliSizeChart.model_validate(make_size_chart("3947"))

    item = _transform(raw, size_chart=chart)

    guide = item.size_guide
    assert guide.type == "standard"
    assert guide.body_part == "upper"
    assert guide.measurement_source == "mercadolibre"
    assert guide.external_size_grid_id == "3947"
    assert guide.has_measurements is True
    assert guide.is_one_size is False
    # The row without a size label is skipped
    assert [(s.size_equivalence, s.chest_circumference, s.waist_circumference) for s in guide.sizes] == [
        ("M", 96, 80),
        ("L", 102, 86),
    ]
    # SIZE_GRID_ID is internal and never copied onto the item
    assert "SIZE_GRID_ID" not in [a.id for a in item.attributes.meli_attributes]


def test_single_row_chart_is_one_size():
    chart_payload = make_size_chart()
    chart_payload["rows"] = chart_payload["rows"][:1]

    item = _transform(make_raw_item(), size_chart=MeliSizeChart.model_validate(chart_payload))

    assert item.size_guide.is_one_size is True


def test_extract_size_chart_id_prefers_value_name():
    item = parse_item(
        make_raw_item(
            attributes=[{"id": "SIZE_GRID_ID", "name": "Guía", "value_id": "111", "value_name": "222"}]
        )
    )
    assert extract_size_chart_id(item.attributes) == "222"

    item = parse_item(
        make_raw_item(attributes=[{"id": "SIZE_GRID_ID", "name": "Guía", "value_id": "111", "value_name": ""}])
    )
    assert extract_size_chart_id(item.attributes) == "111"
    assert extract_size_chart_id([]) == ""


@pytest.mark.parametrize(
    "measure, expected",
    [
        (NumericMeasure(number=96.7), 96),
        (TextMeasure(text="92,5 cm"), 92),
        (TextMeasure(text="n/a"), 0),
        (None, 0),
    ],
)
def test_measure_to_int(measure, expected):
    assert measure_to_int(measure) == expected


def test_malformed_payload_fails_validation():
    with pytest.raises(ValidationError):
        parse_item(make_raw_item(pictures="not-a-list"))


def test_transform_safely_wraps_success(raw_item):
    outcome = transform_safely(
        parse_item(raw_item), SHOP_ID, OWNER_ID, BATCH_ID, imported_at=IMPORTED_AT
    )

    assert outcome.ok
    assert outcome.item.source.external_id == "MLA100"
    assert outcome.error is None


def test_transform_safely_captures_runtime_fault(raw_item, monkeypatch):
    from app.services.meli import transformer

    def boom(*args, **kwargs):
        raise ValueError("bad variation")

    monkeypatch.setattr(transformer, "map_variants", boom)

    outcome = transform_safely(
        parse_item(raw_item), SHOP_ID, OWNER_ID, BATCH_ID, imported_at=IMPORTED_AT
    )

    assert not outcome.ok
    assert outcome.item is None
    assert outcome.error.external_id == "MLA100"
    assert outcome.error.title == "Remera lisa"
    assert "bad variation" in outcome.error.message
