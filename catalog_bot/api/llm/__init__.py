"""
Text provider adapters (JSON-mode chat completions).
"""

from .registry import TextProviderRegistry, get_text_registry

__all__ = ['TextProviderRegistry', 'get_text_registry']
