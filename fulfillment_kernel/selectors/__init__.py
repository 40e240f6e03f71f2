"""Read-only query selectors."""

from fulfillment_kernel.selectors.base import BaseSelector

__all__ = ["BaseSelector"]
