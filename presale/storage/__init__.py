"""
预售系统 — 本地存储
"""

from .references import TicketReferenceStore

__all__ = ["TicketReferenceStore"]
