"""
SiteKit Kernel — Shared Types

Layer trees are plain JSON-compatible dicts (the persisted authoring format).
This module holds the small typed records that travel alongside them:
layer kinds, diagnostics, repository query shapes, pagination context,
the item scope threaded through resolution, and render options.

Every pass in the kernel returns a new tree. Nothing here is mutated in place
once a pass has handed it on.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

FRAGMENT_NAME = "_fragment"


# ---------------------------------------------------------------------------
# Layer kinds
# ---------------------------------------------------------------------------


class LayerKind(str, Enum):
    """Closed set of node kinds. Rule tables are keyed by these."""

    FRAGMENT = "fragment"
    TEXT = "text"
    HEADING = "heading"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    ICON = "icon"
    HTML_EMBED = "html_embed"
    LINK = "link"
    BUTTON = "button"
    FORM = "form"
    INPUT = "input"
    ELEMENT = "element"


_NAME_TO_KIND: dict[str, LayerKind] = {
    FRAGMENT_NAME: LayerKind.FRAGMENT,
    "text": LayerKind.TEXT,
    "heading": LayerKind.HEADING,
    "image": LayerKind.IMAGE,
    "video": LayerKind.VIDEO,
    "audio": LayerKind.AUDIO,
    "icon": LayerKind.ICON,
    "htmlEmbed": LayerKind.HTML_EMBED,
    "link": LayerKind.LINK,
    "button": LayerKind.BUTTON,
    "form": LayerKind.FORM,
    "input": LayerKind.INPUT,
}


def layer_kind(layer: Mapping[str, Any]) -> LayerKind:
    """Classify a layer by its name. Unknown names are generic elements."""
    name = layer.get("name")
    if not isinstance(name, str):
        return LayerKind.ELEMENT
    return _NAME_TO_KIND.get(name, LayerKind.ELEMENT)


def is_fragment(layer: Mapping[str, Any]) -> bool:
    return layer.get("name") == FRAGMENT_NAME


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


@dataclass
class Warning:
    """A non-fatal issue encountered during resolution."""

    code: str
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            d["details"] = self.details
        return d


class Diagnostics:
    """
    Collects warnings for one resolution pass.

    Passes never raise for missing references, failed fetches, cycles or
    malformed variables. They call warn() and degrade the affected subtree.
    """

    def __init__(self) -> None:
        self.warnings: list[Warning] = []

    def warn(self, code: str, message: str, **details: Any) -> None:
        logger.warning("%s: %s %s", code, message, details or "")
        self.warnings.append(Warning(code=code, message=message, details=details or None))

    def record(self, error: Exception, **details: Any) -> None:
        """warn() from a ResolutionError; anything else counts as a failed fetch."""
        self.warn(getattr(error, "code", "data_fetch_failed"), str(error), **details)

    def codes(self) -> list[str]:
        return [w.code for w in self.warnings]

    def __len__(self) -> int:
        return len(self.warnings)


# ---------------------------------------------------------------------------
# Repository query shapes
# ---------------------------------------------------------------------------


@dataclass
class ItemFilters:
    """Item query restrictions passed to get_items_with_values."""

    limit: int | None = None
    offset: int | None = None
    item_ids: list[str] | None = None

    def cache_key(self) -> tuple[Any, ...]:
        ids = tuple(self.item_ids) if self.item_ids is not None else None
        return (self.limit, self.offset, ids)


@dataclass
class ItemsPage:
    """Items returned by a query plus the total matching count."""

    items: list[dict[str, Any]]
    total: int


# ---------------------------------------------------------------------------
# Resolution context
# ---------------------------------------------------------------------------


@dataclass
class PaginationContext:
    """Requested page numbers: per collection layer id, or a document default."""

    page_numbers: dict[str, int] = field(default_factory=dict)
    default_page: int | None = None

    def page_for(self, layer_id: str) -> int:
        page = self.page_numbers.get(layer_id)
        if page is None:
            page = self.default_page
        if page is None or page < 1:
            return 1
        return page


@dataclass(frozen=True)
class ItemScope:
    """
    Item values visible at one point of the tree.

    `values` is the nearest enclosing loop's item (or the page item on a
    dynamic page). `layer_data` maps each enclosing collection layer id to
    its item values, so a binding with collection_layer_id can reach a
    specific ancestor loop.
    """

    values: Mapping[str, Any] = field(default_factory=dict)
    layer_data: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    item_id: str | None = None
    item_slug: str | None = None

    def enter(
        self,
        layer_id: str,
        values: Mapping[str, Any],
        item_id: str | None = None,
        item_slug: str | None = None,
    ) -> ItemScope:
        return ItemScope(
            values=values,
            layer_data={**self.layer_data, layer_id: values},
            item_id=item_id,
            item_slug=item_slug,
        )

    def for_layer(self, layer: Mapping[str, Any]) -> ItemScope:
        """Scope for a layer, picking up values stored on a collection clone."""
        values = layer.get("_collectionItemValues")
        layer_data = layer.get("_layerDataMap")
        item_id = layer.get("_collectionItemId")
        if values is None and layer_data is None and item_id is None:
            return self
        return ItemScope(
            values=values if values is not None else self.values,
            layer_data=layer_data if layer_data is not None else self.layer_data,
            item_id=item_id if item_id is not None else self.item_id,
            item_slug=layer.get("_collectionItemSlug", self.item_slug),
        )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


@dataclass
class RenderOptions:
    """Options shared by both renderers."""

    image_width: int = 1200
    image_quality: int = 85
    srcset_widths: tuple[int, ...] = (640, 750, 828, 1080, 1200, 1920)
    image_sizes: str = "100vw"
    edit_mode: bool = False
    default_pagination_controls: bool = False


@dataclass
class RenderContext:
    """
    Everything a renderer needs besides the tree itself.

    Built once per resolved page by the pipeline.
    """

    pages: list[dict[str, Any]] = field(default_factory=list)
    folders: list[dict[str, Any]] = field(default_factory=list)
    locale: dict[str, Any] | None = None
    translations: dict[str, dict[str, Any]] = field(default_factory=dict)
    collection_item_slugs: dict[str, str] = field(default_factory=dict)
    anchor_map: dict[str, str] = field(default_factory=dict)
    asset_map: dict[str, dict[str, Any]] = field(default_factory=dict)
    page_item_values: dict[str, Any] | None = None
    page_item_id: str | None = None
    options: RenderOptions = field(default_factory=RenderOptions)

    def root_scope(self) -> ItemScope:
        return ItemScope(
            values=self.page_item_values or {},
            item_id=self.page_item_id,
            item_slug=self.collection_item_slugs.get(self.page_item_id or ""),
        )
