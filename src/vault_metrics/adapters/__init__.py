from __future__ import annotations

from .price_adapters import PRICE_ADAPTERS

__all__ = ["PRICE_ADAPTERS"]
