"""
Image provider adapters and brand image lookups.
"""

from .providers import build_image_providers

__all__ = ['build_image_providers']
