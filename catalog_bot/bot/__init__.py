"""
Bot Package
===========
Telegram bot handlers and error management.
"""

from .handlers import router
from .error_handler import init_error_handler, on_dispatcher_error

__all__ = ['router', 'init_error_handler', 'on_dispatcher_error']
