from .base import BaseSource
from .html import HtmlStatusSource

__all__ = ["BaseSource", "HtmlStatusSource"]
