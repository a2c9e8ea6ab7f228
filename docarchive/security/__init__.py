"""docarchive Security — Visibility resolution for archive callers."""

from docarchive.security.permissions import ExplorerMode, VisibilityFilter, VisibilityResolver, visibility_resolver  # noqa: F401

__all__ = ["ExplorerMode", "VisibilityFilter", "VisibilityResolver", "visibility_resolver"]
