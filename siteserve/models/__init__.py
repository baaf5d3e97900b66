"""
Pydantic models for SiteServe.

All data shapes defined here. No imports from routes or services.
"""

from siteserve.models.layer import (
    CollectionItemsRequest,
    CollectionItemsResponse,
    CollectionVariable,
    Component,
    ComponentVariable,
    Layer,
    PageTreeResponse,
    Variable,
    parse_variable,
)

__all__ = [
    # Layer documents
    "Layer",
    "Component",
    "ComponentVariable",
    "CollectionVariable",
    "Variable",
    "parse_variable",
    # API
    "CollectionItemsRequest",
    "CollectionItemsResponse",
    "PageTreeResponse",
]
