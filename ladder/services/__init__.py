"""
Services package for the ladder bot.
"""

from .base import BaseService
from .notifications import NotificationService

__all__ = ['BaseService', 'NotificationService']
