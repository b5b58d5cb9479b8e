"""MercadoLibre API payload schemas.

Only the fields the sync pipeline reads are declared; everything else in the
upstream payloads is ignored. Loosely typed upstream values (measure
"struct" blobs, sale terms) are narrowed here so nothing untyped reaches the
transformer.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MeliModel(BaseModel):
    """Base for upstream payloads: tolerate unknown fields."""

    model_config = ConfigDict(extra="ignore")


# Measure values (size chart cells, attribute value_struct)


class NumericMeasure(BaseModel):
    """A numeric measurement such as ``{"number": 92, "unit": "cm"}``."""

    kind: Literal["numeric"] = "numeric"
    number: float
    unit: Optional[str] = None


class TextMeasure(BaseModel):
    """A free-text measurement value."""

    kind: Literal["text"] = "text"
    text: str


Measure = Annotated[Union[NumericMeasure, TextMeasure], Field(discriminator="kind")]


def coerce_measure(value: Any) -> Optional[dict[str, Any]]:
    """Narrow a raw ``struct`` payload into the ``Measure`` union (or absent)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return {"kind": "numeric", "number": value}
    if isinstance(value, str):
        return {"kind": "text", "text": value} if value else None
    if isinstance(value, dict):
        if "kind" in value:
            return value
        number = value.get("number")
        if isinstance(number, (int, float)) and not isinstance(number, bool):
            unit = value.get("unit")
            return {
                "kind": "numeric",
                "number": number,
                "unit": unit if isinstance(unit, str) else None,
            }
        text = value.get("text")
        if isinstance(text, str):
            return {"kind": "text", "text": text}
    return None


# Item payloads


class MeliAttributeValue(MeliModel):
    id: Optional[str] = None
    name: str = ""
    struct: Optional[Measure] = None

    @field_validator("name", mode="before")
    @classmethod
    def _name_none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("struct", mode="before")
    @classmethod
    def _narrow_struct(cls, v: Any) -> Optional[dict[str, Any]]:
        return coerce_measure(v)


class MeliAttribute(MeliModel):
    id: str
    name: str = ""
    value_id: Optional[str] = None
    value_name: str = ""
    value_struct: Optional[Measure] = None
    values: list[MeliAttributeValue] = Field(default_factory=list)
    value_type: Optional[str] = None

    @field_validator("name", "value_name", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("values", mode="before")
    @classmethod
    def _none_as_empty_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("value_struct", mode="before")
    @classmethod
    def _narrow_struct(cls, v: Any) -> Optional[dict[str, Any]]:
        return coerce_measure(v)


class MeliSaleTerm(MeliModel):
    """A sale term entry that carries a usable id and value name."""

    id: str
    name: str = ""
    value_id: str = ""
    value_name: str


def _narrow_sale_terms(raw: Any) -> list[dict[str, Any]]:
    """Keep only sale terms with string ``id`` and ``value_name``."""
    if not isinstance(raw, list):
        return []
    terms = []
    for term in raw:
        if not isinstance(term, dict):
            continue
        term_id = term.get("id")
        value_name = term.get("value_name")
        if not isinstance(term_id, str) or not isinstance(value_name, str):
            continue
        value_id = term.get("value_id")
        name = term.get("name")
        terms.append(
            {
                "id": term_id,
                "name": name if isinstance(name, str) else "",
                "value_id": value_id if isinstance(value_id, str) else "",
                "value_name": value_name,
            }
        )
    return terms


class MeliPicture(MeliModel):
    id: str
    url: str = ""
    secure_url: str = ""


class MeliShipping(MeliModel):
    mode: Optional[str] = None
    logistic_type: Optional[str] = None
    free_shipping: bool = False
    local_pick_up: bool = False


class MeliVariation(MeliModel):
    id: Optional[int] = None
    price: float = 0
    attribute_combinations: list[MeliAttribute] = Field(default_factory=list)
    available_quantity: int = 0
    sold_quantity: int = 0
    picture_ids: list[str] = Field(default_factory=list)
    seller_custom_field: Optional[str] = None
    user_product_id: str = ""

    @field_validator("attribute_combinations", "picture_ids", mode="before")
    @classmethod
    def _none_as_empty_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("user_product_id", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("price", "available_quantity", "sold_quantity", mode="before")
    @classmethod
    def _none_as_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class MeliItem(MeliModel):
    """Full listing detail as returned by ``GET /items``."""

    id: str
    site_id: Optional[str] = None
    title: str = ""
    seller_id: Optional[int] = None
    category_id: str = ""
    domain_id: str = ""
    price: float = 0
    currency_id: str = ""
    available_quantity: int = 0
    condition: str = ""
    status: str = ""
    permalink: Optional[str] = None
    sale_terms: list[MeliSaleTerm] = Field(default_factory=list)
    pictures: list[MeliPicture] = Field(default_factory=list)
    shipping: MeliShipping = Field(default_factory=MeliShipping)
    attributes: list[MeliAttribute] = Field(default_factory=list)
    variations: list[MeliVariation] = Field(default_factory=list)

    @field_validator("pictures", "attributes", "variations", mode="before")
    @classmethod
    def _none_as_empty_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("sale_terms", mode="before")
    @classmethod
    def _narrow_sale_terms(cls, v: Any) -> list[dict[str, Any]]:
        return _narrow_sale_terms(v)

    @field_validator(
        "title", "category_id", "domain_id", "currency_id", "condition", "status",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("shipping", mode="before")
    @classmethod
    def _none_as_default(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("price", "available_quantity", mode="before")
    @classmethod
    def _none_as_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


# Listing / batch responses


class MeliPaging(MeliModel):
    total: int = 0
    offset: int = 0
    limit: int = 0


class MeliUserItemsSearch(MeliModel):
    """Response of ``GET /users/{id}/items/search``."""

    results: list[str] = Field(default_factory=list)
    paging: MeliPaging = Field(default_factory=MeliPaging)

    @field_validator("results", mode="before")
    @classmethod
    def _none_as_empty_list(cls, v: Any) -> Any:
        return [] if v is None else v


class MeliBatchEntry(MeliModel):
    """One ``{code, body}`` envelope of the multi-get response.

    The body stays raw so that a malformed item is rejected per item later
    in the pipeline instead of failing the whole batch.
    """

    code: int
    body: Any = None


# Size charts


class MeliSizeChartRow(MeliModel):
    id: Optional[str] = None
    attributes: list[MeliAttribute] = Field(default_factory=list)

    @field_validator("attributes", mode="before")
    @classmethod
    def _none_as_empty_list(cls, v: Any) -> Any:
        return [] if v is None else v


class MeliSizeChart(MeliModel):
    """Response of ``GET /catalog/charts/{id}``."""

    id: Optional[str] = None
    type: Optional[str] = None
    measure_type: str = ""
    rows: list[MeliSizeChartRow] = Field(default_factory=list)

    @field_validator("rows", mode="before")
    @classmethod
    def _none_as_empty_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("measure_type", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v


# OAuth


class MeliAuthResponse(MeliModel):
    """Token endpoint response for both grant types."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: str = ""
    user_id: Optional[int] = None
    refresh_token: str

    @field_validator("scope", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("token_type", mode="before")
    @classmethod
    def _default_token_type(cls, v: Any) -> Any:
        return v or "Bearer"
