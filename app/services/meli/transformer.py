"""Map MercadoLibre listings onto host catalog items.

Everything in this module is pure: no I/O, no clock reads unless the caller
omits ``imported_at``. Ids are derived with UUID5 so the same listing always
maps to the same item.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional
import logging
import re
import uuid

from pydantic import ValidationError

from app.schemas.catalog import (
    Attributes,
    Currency,
    Delivery,
    Dimensions,
    Item,
    ItemCategory,
    ItemStatus,
    MarketplaceAttribute,
    Price,
    Size,
    SizeGuide,
    SizeStock,
    Source,
    Variant,
)
from app.schemas.meli import (
    MeliAttribute,
    MeliItem,
    MeliPicture,
    MeliSaleTerm,
    MeliSizeChart,
    MeliVariation,
    NumericMeasure,
    TextMeasure,
)

logger = logging.getLogger(__name__)

SOURCE_TYPE = "meli"
TRANSFORM_VERSION = "1.0.0"

_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "https://api.mercadolibre.com/items")

INACTIVE_STATUSES = frozenset({"paused", "inactive", "closed"})

# Internal/administrative attributes never copied onto the item
EXCLUDED_ATTRIBUTES = frozenset(
    {
        "GIFTABLE",
        "IS_EMERGING_BRAND",
        "IS_HIGHLIGHT_BRAND",
        "IS_SUITABLE_FOR_PREGNACY",
        "IS_TOM_BRAND",
        "SIZE_GRID_ID",
        "WITH_RECYCLED_MATERIALS",
    }
)
UNSET_VALUE_ID = "-1"
SALE_TERM_PREFIX = "sale_term_"

COLOR_ATTRIBUTES = ("COLOR", "MAIN_COLOR")
SIZE_ATTRIBUTE = "SIZE"
SIZE_GRID_ATTRIBUTE = "SIZE_GRID_ID"

DEFAULT_CATEGORY = "Ropa"
# Checked in order; first keyword hit wins
CATEGORY_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("SHOE", "FOOTWEAR"), "Calzado"),
    (("ACCESSORIE",), "Accesorios"),
)

DEFAULT_COLOR_ID = "default"
DEFAULT_COLOR_NAME = "Default"
DEFAULT_COLOR_HEX = "#000000"

# The listing payload carries no reliable package dimensions
DEFAULT_DIMENSIONS = Dimensions(weight=500, length=30, height=5, width=25)

# Only ARS is published with local separators; other codes use the fallback
CURRENCIES: dict[str, Currency] = {
    "ARS": Currency(id="ARS", symbol="$", decimal_divider=",", thousands_divider="."),
}

_LEADING_NUMBER = re.compile(r"^\s*(\d+(?:[.,]\d+)?)")


@dataclass(frozen=True)
class TransformError:
    """Why a single listing could not be transformed."""

    external_id: str
    title: str
    message: str


@dataclass(frozen=True)
class TransformOutcome:
    """Either a transformed item or the error that prevented it."""

    item: Optional[Item] = None
    error: Optional[TransformError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, external_id: str, title: str, message: str) -> "TransformOutcome":
        return cls(error=TransformError(external_id=external_id, title=title, message=message))


# Attribute helpers


def extract_attribute_value(attributes: list[MeliAttribute], attribute_id: str) -> str:
    """Resolve an attribute's display value: value_name, else first value name."""
    for attr in attributes:
        if attr.id == attribute_id:
            if attr.value_name:
                return attr.value_name
            if attr.values:
                return attr.values[0].name
    return ""


def extract_size_chart_id(attributes: list[MeliAttribute]) -> str:
    """Return the SIZE_GRID_ID reference of a listing, or "" if it has none."""
    for attr in attributes:
        if attr.id == SIZE_GRID_ATTRIBUTE:
            if attr.value_name:
                return attr.value_name
            if attr.value_id:
                return attr.value_id
    return ""


def map_status(meli_status: str) -> ItemStatus:
    if meli_status in INACTIVE_STATUSES:
        return ItemStatus.INACTIVE
    return ItemStatus.ACTIVE


def infer_category_name(domain_id: str) -> str:
    for keywords, name in CATEGORY_KEYWORDS:
        if any(keyword in domain_id for keyword in keywords):
            return name
    return DEFAULT_CATEGORY


def map_category(domain_id: str) -> ItemCategory:
    # Best-effort heuristic until categories are mapped from configuration
    name = infer_category_name(domain_id)
    return ItemCategory(id=uuid.uuid5(_ID_NAMESPACE, f"category:{name}").hex, name=name)


def map_delivery() -> Delivery:
    return Delivery(fragile=False, dimensions=DEFAULT_DIMENSIONS.model_copy())


def map_currency(currency_id: str) -> Currency:
    """Look up display conventions for a currency code.

    Unknown codes map to themselves with "." decimals and "," thousands.
    """
    currency = CURRENCIES.get(currency_id)
    if currency is not None:
        return currency.model_copy()
    return Currency(
        id=currency_id,
        symbol=currency_id,
        decimal_divider=".",
        thousands_divider=",",
    )


def map_condition(condition: str) -> str:
    return "pre-owned" if condition == "used" else "new"


def _keep_attribute(attr: MeliAttribute) -> bool:
    if attr.id in EXCLUDED_ATTRIBUTES:
        return False
    if not attr.value_name:
        return False
    if attr.value_id == UNSET_VALUE_ID:
        return False
    return True


def _sale_term_attribute(term: MeliSaleTerm) -> MarketplaceAttribute:
    return MarketplaceAttribute(
        id=f"{SALE_TERM_PREFIX}{term.id.lower()}",
        name=term.name,
        value_id=term.value_id,
        value_name=term.value_name,
    )


def extract_attributes(
    attributes: list[MeliAttribute],
    condition: str,
    sale_terms: list[MeliSaleTerm],
) -> Attributes:
    """Build the attributes block: promoted scalars plus filtered marketplace attributes."""
    meli_attributes = [
        MarketplaceAttribute(
            id=attr.id,
            name=attr.name,
            value_id=attr.value_id or "",
            value_name=attr.value_name,
        )
        for attr in attributes
        if _keep_attribute(attr)
    ]
    meli_attributes.extend(_sale_term_attribute(term) for term in sale_terms)

    return Attributes(
        condition=map_condition(condition),
        gender=extract_attribute_value(attributes, "GENDER").lower(),
        composition=extract_attribute_value(attributes, "COMPOSITION"),
        meli_attributes=meli_attributes,
    )


# Variants


def _color_of(variation: MeliVariation) -> tuple[str, str]:
    for attr in variation.attribute_combinations:
        if attr.id in COLOR_ATTRIBUTES:
            if attr.value_id:
                return attr.value_id, attr.value_name
            return attr.value_name, attr.value_name
    return DEFAULT_COLOR_ID, DEFAULT_COLOR_NAME


def _size_of(variation: MeliVariation) -> str:
    for attr in variation.attribute_combinations:
        if attr.id == SIZE_ATTRIBUTE:
            return attr.value_name
    return ""


def image_urls(pictures: list[MeliPicture]) -> list[str]:
    return [picture.secure_url for picture in pictures]


def variation_images(variation: MeliVariation, pictures: list[MeliPicture]) -> list[str]:
    """Images referenced by a variation, falling back to every item picture."""
    by_id = {picture.id: picture.secure_url for picture in pictures}
    images = [by_id[pid] for pid in variation.picture_ids if pid in by_id]
    return images or image_urls(pictures)


def map_variants(
    variations: list[MeliVariation],
    pictures: list[MeliPicture],
) -> list[Variant]:
    """Group variations by color; the first color seen is the main variant."""
    if not variations:
        return [
            Variant(
                color_id=DEFAULT_COLOR_ID,
                color_name=DEFAULT_COLOR_NAME,
                color_hex=DEFAULT_COLOR_HEX,
                is_main=True,
                images=image_urls(pictures),
            )
        ]

    by_color: dict[str, Variant] = {}
    for variation in variations:
        color_id, color_name = _color_of(variation)
        variant = by_color.get(color_id)
        if variant is None:
            variant = Variant(
                color_id=color_id,
                color_name=color_name,
                color_hex=DEFAULT_COLOR_HEX,
                is_main=not by_color,
                images=variation_images(variation, pictures),
            )
            by_color[color_id] = variant

        size_label = _size_of(variation)
        if size_label:
            variant.size_stock.append(
                SizeStock(
                    size_label=size_label,
                    stock=variation.available_quantity,
                    sku=variation.user_product_id,
                )
            )

    return list(by_color.values())


# Size guide


def measure_to_int(measure: Optional[NumericMeasure | TextMeasure]) -> int:
    """Resolve a measure cell to whole units (0 when absent or unreadable)."""
    if isinstance(measure, NumericMeasure):
        return int(measure.number)
    if isinstance(measure, TextMeasure):
        match = _LEADING_NUMBER.match(measure.text)
        if match:
            return int(float(match.group(1).replace(",", ".")))
    return 0


_MEASURE_FIELDS = {
    "CHEST_CIRCUMFERENCE_FROM": "chest_circumference",
    "WAIST_CIRCUMFERENCE_FROM": "waist_circumference",
    "HIP_CIRCUMFERENCE_FROM": "hip_circumference",
}


def map_size_guide(size_chart: MeliSizeChart, size_grid_id: str = "") -> SizeGuide:
    sizes: list[Size] = []
    for row in size_chart.rows:
        label = ""
        measures: dict[str, int] = {}
        for attr in row.attributes:
            if not attr.values:
                continue
            if attr.id == SIZE_ATTRIBUTE:
                label = attr.values[0].name
            elif attr.id in _MEASURE_FIELDS:
                measures[_MEASURE_FIELDS[attr.id]] = measure_to_int(attr.values[0].struct)
        if label:
            sizes.append(Size(size_equivalence=label, **measures))

    # Only body measures are published for apparel charts
    body_part = "upper"

    return SizeGuide(
        type="standard",
        body_part=body_part,
        has_measurements=len(sizes) > 0,
        is_one_size=len(sizes) == 1,
        measurement_source="mercadolibre",
        external_size_grid_id=size_grid_id,
        sizes=sizes,
    )


# Item


def item_id_for(shop_id: str, external_id: str) -> str:
    return uuid.uuid5(_ID_NAMESPACE, f"{shop_id}:{external_id}").hex


def build_description(meli_item: MeliItem) -> str:
    brand = extract_attribute_value(meli_item.attributes, "BRAND")
    if brand:
        return f"{brand} - {meli_item.title}"
    return meli_item.title


def extract_external_sku(variations: list[MeliVariation]) -> str:
    if variations and variations[0].user_product_id:
        return variations[0].user_product_id
    return ""


def transform_metadata(meli_item: MeliItem) -> dict[str, str]:
    return {
        "original_domain_id": meli_item.domain_id,
        "original_category_id": meli_item.category_id,
        "original_status": meli_item.status,
        "original_condition": meli_item.condition,
        "variations_count": str(len(meli_item.variations)),
        "pictures_count": str(len(meli_item.pictures)),
        "attributes_count": str(len(meli_item.attributes)),
    }


def parse_item(raw: Any) -> MeliItem:
    """Validate a raw multi-get body into a MeliItem (raises ValidationError)."""
    return MeliItem.model_validate(raw)


def transform_item(
    meli_item: MeliItem,
    shop_id: str,
    owner_id: str,
    batch_id: str,
    size_chart: Optional[MeliSizeChart] = None,
    imported_at: Optional[datetime] = None,
) -> Item:
    """Map one MercadoLibre listing onto a host catalog item.

    Args:
        meli_item: Validated listing detail
        shop_id: Host shop the item belongs to
        owner_id: Seller identity
        batch_id: Sync batch the item is imported under
        size_chart: Resolved size chart, if the listing references one
        imported_at: Import timestamp (defaults to now)

    Returns:
        The canonical catalog item
    """
    size_guide = None
    if size_chart is not None:
        size_guide = map_size_guide(size_chart, extract_size_chart_id(meli_item.attributes))

    return Item(
        id=item_id_for(shop_id, meli_item.id),
        shop_id=shop_id,
        user_id=owner_id,
        name=meli_item.title,
        description=build_description(meli_item),
        status=map_status(meli_item.status),
        category=map_category(meli_item.domain_id),
        delivery=map_delivery(),
        attributes=extract_attributes(
            meli_item.attributes, meli_item.condition, meli_item.sale_terms
        ),
        variants=map_variants(meli_item.variations, meli_item.pictures),
        size_guide=size_guide,
        price=Price(
            shop_id=shop_id,
            amount=meli_item.price,
            currency=map_currency(meli_item.currency_id),
        ),
        source=Source(
            source_type=SOURCE_TYPE,
            external_id=meli_item.id,
            external_sku=extract_external_sku(meli_item.variations),
            batch_id=batch_id,
            imported_at=imported_at or datetime.now(timezone.utc),
            etl_version=TRANSFORM_VERSION,
            transform_metadata=transform_metadata(meli_item),
        ),
    )


def describe_raw(raw: Any) -> tuple[str, str]:
    """Best-effort (external id, title) of a payload that may be malformed."""
    if not isinstance(raw, dict):
        return "", ""
    external_id = raw.get("id")
    title = raw.get("title")
    return (
        str(external_id) if external_id is not None else "",
        title if isinstance(title, str) else "",
    )


def transform_safely(
    meli_item: MeliItem,
    shop_id: str,
    owner_id: str,
    batch_id: str,
    size_chart: Optional[MeliSizeChart] = None,
    imported_at: Optional[datetime] = None,
) -> TransformOutcome:
    """Run ``transform_item`` and capture any fault as a TransformOutcome failure."""
    try:
        item = transform_item(
            meli_item, shop_id, owner_id, batch_id,
            size_chart=size_chart, imported_at=imported_at,
        )
    except (ValidationError, ValueError, TypeError, KeyError, AttributeError, IndexError) as e:
        logger.warning(f"Transform of item {meli_item.id} failed: {e}", exc_info=True)
        return TransformOutcome.failure(
            meli_item.id, meli_item.title, f"unexpected error during transformation: {e}"
        )
    return TransformOutcome(item=item)
