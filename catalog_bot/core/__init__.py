"""
Core Package
============
Configuration, logging and pipeline data models.
"""

from .config import settings
from .models import ProductDraft, Table

__all__ = ['settings', 'ProductDraft', 'Table']
