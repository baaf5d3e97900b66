"""
SiteServe configuration — all environment variables in one place.

Read from environment at import. The kernel never reads these directly;
they are turned into RenderOptions and pipeline arguments here.
"""

from __future__ import annotations

import os


def _float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from None


def _widths(raw: str) -> tuple[int, ...]:
    widths = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit():
            raise RuntimeError(f"IMAGE_SRCSET_WIDTHS must be comma-separated integers, got {raw!r}")
        widths.append(int(part))
    return tuple(widths)


class Settings:
    """Application settings from environment variables."""

    # Site data
    SITE_BUNDLE_PATH: str = os.environ.get("SITE_BUNDLE_PATH", "")
    SITE_TIMEZONE: str = os.environ.get("SITE_TIMEZONE", "UTC")

    # Resolution limits
    FETCH_TIMEOUT_SECONDS: float = _float("FETCH_TIMEOUT_SECONDS", 5.0)
    RESOLVE_DEADLINE_SECONDS: float = _float("RESOLVE_DEADLINE_SECONDS", 15.0)

    # Images
    IMAGE_QUALITY: int = int(_float("IMAGE_QUALITY", 85))
    IMAGE_SRCSET_WIDTHS: tuple[int, ...] = _widths(os.environ.get("IMAGE_SRCSET_WIDTHS", "640,750,828,1080,1200,1920"))

    # Pagination
    DEFAULT_PAGINATION_CONTROLS: bool = os.environ.get("DEFAULT_PAGINATION_CONTROLS", "").lower() in ("1", "true", "yes")

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")

    @property
    def CACHE_CONTROL(self) -> str:
        if self.ENVIRONMENT == "development":
            return "no-cache"
        return "public, max-age=300, s-maxage=3600, stale-while-revalidate=86400"


# Singleton instance
settings = Settings()
