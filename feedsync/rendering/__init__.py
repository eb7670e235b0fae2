"""Feed document rendering."""

from feedsync.rendering.renderer import CONTENT_TYPES, RenderError, render_feed

__all__ = [
    "CONTENT_TYPES",
    "RenderError",
    "render_feed",
]
