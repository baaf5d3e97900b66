"""
SiteKit Kernel — layer resolution and rendering.

Passes (pure, tree in → new tree out):
  components    — component instances → namespaced concrete subtrees
  collections   — collection loops → fragments of per-item clones
  translations  — locale overlay on text and media slots
  assets        — asset ids → URLs / inline SVG
  visibility    — conditional visibility pruning

Renderers (share rules.py):
  html_renderer — tree → HTML string
  tree_renderer — tree → UI tree + pagination side-channel

pipeline coordinates the passes against a LayerRepository.
"""

from sitekit.kernel.components import expand_components
from sitekit.kernel.errors import PageNotFound, ResolutionError
from sitekit.kernel.html_renderer import render_html
from sitekit.kernel.pipeline import LayerPipeline, PageItem, ResolvedPage
from sitekit.kernel.repository import CachedRepository, LayerRepository, MemoryRepository
from sitekit.kernel.translations import apply_translations
from sitekit.kernel.tree_renderer import render_tree
from sitekit.kernel.types import Diagnostics, ItemScope, LayerKind, PaginationContext, RenderContext, RenderOptions
from sitekit.kernel.visibility import filter_by_visibility

__all__ = [
    "expand_components",
    "apply_translations",
    "filter_by_visibility",
    "render_html",
    "render_tree",
    "LayerPipeline",
    "PageItem",
    "ResolvedPage",
    "LayerRepository",
    "MemoryRepository",
    "CachedRepository",
    "Diagnostics",
    "ItemScope",
    "LayerKind",
    "PaginationContext",
    "RenderContext",
    "RenderOptions",
    "PageNotFound",
    "ResolutionError",
]
