"""Host catalog item schemas (the canonical item representation)."""

import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ItemStatus(str, enum.Enum):
    """Item lifecycle status in the host catalog."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class ItemSubcategory(BaseModel):
    id: str
    name: str


class ItemCategory(BaseModel):
    id: str
    name: str
    subcategory: Optional[ItemSubcategory] = None


class Dimensions(BaseModel):
    """Package dimensions: grams and centimetres."""

    weight: int
    length: int
    height: int
    width: int


class Delivery(BaseModel):
    fragile: bool = False
    dimensions: Dimensions


class MarketplaceAttribute(BaseModel):
    """A marketplace attribute kept verbatim on the item."""

    id: str
    name: str = ""
    value_id: str = ""
    value_name: str


class Attributes(BaseModel):
    condition: str = "new"
    gender: str = ""
    composition: str = ""
    meli_attributes: list[MarketplaceAttribute] = Field(default_factory=list)


class SizeStock(BaseModel):
    size_label: str
    stock: int
    sku: str = ""


class Variant(BaseModel):
    """All size/stock rows sharing one color."""

    color_id: str
    color_name: str
    color_hex: str = "#000000"
    is_main: bool = False
    images: list[str] = Field(default_factory=list)
    size_stock: list[SizeStock] = Field(default_factory=list)


class Size(BaseModel):
    size_equivalence: str
    chest_circumference: int = 0
    waist_circumference: int = 0
    hip_circumference: int = 0


class SizeGuide(BaseModel):
    type: str = "standard"
    body_part: str = "upper"
    has_measurements: bool = False
    is_one_size: bool = False
    measurement_source: str = "mercadolibre"
    external_size_grid_id: str = ""
    sizes: list[Size] = Field(default_factory=list)


class Currency(BaseModel):
    id: str
    symbol: str
    decimal_divider: str
    thousands_divider: str


class Price(BaseModel):
    shop_id: str
    amount: float
    currency: Currency


class Source(BaseModel):
    """Provenance of an imported item."""

    source_type: str
    external_id: str
    external_sku: str = ""
    batch_id: str
    imported_at: datetime
    etl_version: str
    transform_metadata: dict[str, str] = Field(default_factory=dict)


class Item(BaseModel):
    """A catalog item ready to be upserted into the host catalog."""

    id: str
    shop_id: str
    user_id: str
    name: str
    description: str = ""
    status: ItemStatus = ItemStatus.ACTIVE
    category: ItemCategory
    delivery: Delivery
    attributes: Attributes
    variants: list[Variant] = Field(default_factory=list)
    size_guide: Optional[SizeGuide] = None
    price: Price
    source: Source


class BulkUpsertRequest(BaseModel):
    items: list[Item]


class BulkUpsertResponse(BaseModel):
    total_items: int = 0
    created_count: int = 0
    updated_count: int = 0


class Shop(BaseModel):
    """The subset of a host shop record the sync needs."""

    id: str
    name: Optional[str] = None
    user_id: Optional[str] = None
