"""
Rendering package for the Render Service.

Renderers turn a URL into serialized HTML. Each render owns its own
browser instance; teardown happens in the background.
"""

from .renderer import Renderer, PlaywrightRenderer

__all__ = ["Renderer", "PlaywrightRenderer"]
