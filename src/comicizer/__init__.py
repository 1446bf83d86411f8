"""comicizer - turn academic papers into illustrated comics."""

from __future__ import annotations

__version__ = "0.3.0"
