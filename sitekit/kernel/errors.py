"""
SiteKit Kernel — Errors

Resolution errors are raised inside a pass and caught at the nearest
isolation boundary (one component instance, one collection layer, one
reference hop), which records a Warning and degrades that subtree.
Only PageNotFound is meant to reach a caller.
"""

from __future__ import annotations


class ResolutionError(Exception):
    """Base class for errors raised while resolving a layer tree."""

    code = "resolution_error"


class ReferenceMissing(ResolutionError):
    """A component, collection, item or asset id does not exist."""

    code = "reference_missing"


class DataFetchFailure(ResolutionError):
    """A repository call raised or timed out."""

    code = "data_fetch_failed"


class CycleDetected(ResolutionError):
    """A component instances itself, or a reference chain revisits an item."""

    code = "cycle_detected"


class MalformedVariable(ResolutionError):
    """A variable does not match any known tagged-union shape."""

    code = "malformed_variable"


class PageNotFound(Exception):
    """The top-level page or dynamic-page item could not be found."""
    pass
