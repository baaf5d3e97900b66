"""Persisted layer documents and the request/response shapes around them."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------


class TextData(BaseModel):
    model_config = ConfigDict(extra="allow")

    content: str


class RichTextData(BaseModel):
    model_config = ConfigDict(extra="allow")

    content: dict[str, Any]


class AssetData(BaseModel):
    model_config = ConfigDict(extra="allow")

    asset_id: str | None = None


class FieldData(BaseModel):
    model_config = ConfigDict(extra="allow")

    field_id: str
    field_type: str | None = None
    relationships: list[str] = Field(default_factory=list)
    format: str | None = None
    source: Literal["page", "collection"] | None = None
    collection_layer_id: str | None = None


class VideoData(BaseModel):
    model_config = ConfigDict(extra="allow")

    provider: str
    video_id: str


class StaticTextVariable(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["static_text"]
    data: TextData
    id: str | None = None


class DynamicTextVariable(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["dynamic_text"]
    data: TextData
    id: str | None = None


class RichTextVariable(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["dynamic_rich_text"]
    data: RichTextData
    id: str | None = None


class AssetVariable(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["asset"]
    data: AssetData
    id: str | None = None


class FieldVariable(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["field"]
    data: FieldData
    id: str | None = None


class VideoVariable(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["video"]
    data: VideoData
    id: str | None = None


Variable = Annotated[
    Union[
        StaticTextVariable,
        DynamicTextVariable,
        RichTextVariable,
        AssetVariable,
        FieldVariable,
        VideoVariable,
    ],
    Field(discriminator="type"),
]

_variable_adapter: TypeAdapter[Variable] = TypeAdapter(Variable)


def parse_variable(raw: Any) -> Variable | None:
    """Validate a stored variable. Anything that does not validate is absent."""
    try:
        return _variable_adapter.validate_python(raw)
    except ValidationError:
        return None


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


class PaginationSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    enabled: bool = False
    mode: Literal["pages", "load_more"] = "pages"
    items_per_page: int = Field(default=10, ge=1)


class CollectionVariable(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    sort_by: str | None = None
    sort_order: Literal["asc", "desc"] | None = None
    limit: int | None = Field(default=None, ge=0)
    offset: int | None = Field(default=None, ge=0)
    source_field_id: str | None = None
    source_field_type: Literal["reference", "multi_reference", "multi_asset"] | None = None
    source_field_source: Literal["page", "collection"] | None = None
    filters: dict[str, Any] | None = None
    pagination: PaginationSettings | None = None


# ---------------------------------------------------------------------------
# Layers and components
# ---------------------------------------------------------------------------


class Layer(BaseModel):
    """
    One persisted layer. Unknown keys are kept so a document round-trips
    through model_validate / model_dump(exclude_unset=True, by_alias=True).
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    name: str
    children: list[Layer] | None = None
    variables: dict[str, Any] | None = None
    settings: dict[str, Any] | None = None
    attributes: dict[str, Any] | None = None
    classes: list[str] | str | None = None
    interactions: list[dict[str, Any]] | None = None
    component_id: str | None = Field(default=None, alias="componentId")
    component_overrides: dict[str, dict[str, Any]] | None = Field(default=None, alias="componentOverrides")

    def collection(self) -> CollectionVariable | None:
        raw = (self.variables or {}).get("collection")
        if not isinstance(raw, dict):
            return None
        try:
            return CollectionVariable.model_validate(raw)
        except ValidationError:
            return None


class ComponentVariable(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    type: Literal["text", "image", "link", "audio", "video", "icon"]
    default_value: Any = None


class Component(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    layers: list[Layer]
    variables: list[ComponentVariable] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# API shapes
# ---------------------------------------------------------------------------


class CollectionItemsRequest(BaseModel):
    """What the client sends to load another page of a load-more loop."""

    model_config = ConfigDict(extra="forbid")

    layer_id: str = Field(min_length=1)
    collection_id: str = Field(min_length=1)
    layer_template: list[Layer]
    page: int = Field(default=2, ge=1)
    items_per_page: int = Field(default=10, ge=1, le=200)
    item_ids: list[str] | None = None
    sort_by: str | None = None
    sort_order: Literal["asc", "desc"] | None = None
    filters: dict[str, Any] | None = None
    locale: str | None = None
    published: bool = True


class CollectionItemsResponse(BaseModel):
    html: str
    page: int


class PageTreeResponse(BaseModel):
    """Interactive tree for one page, with pagination state and warnings."""

    page_id: str
    nodes: list[Any]
    pagination: dict[str, dict[str, Any]]
    warnings: list[dict[str, Any]] = Field(default_factory=list)
    tree_hash: str
