"""
预售系统 — 公共模块
"""

from .exceptions import (
    AvailabilityConflictError,
    BatchQuoteError,
    InvalidProofArchiveError,
    InvalidTicketTransitionError,
    PresaleError,
    ProofNotReadyError,
    ProofServiceError,
    QuoteError,
    ReferenceStoreError,
    ServiceError,
    SessionClosedError,
    SwapBridgeError,
    TicketError,
    TicketNotFoundError,
    TransientServiceError,
)
from .logging import get_logger

__all__ = [
    "AvailabilityConflictError",
    "BatchQuoteError",
    "InvalidProofArchiveError",
    "InvalidTicketTransitionError",
    "PresaleError",
    "ProofNotReadyError",
    "ProofServiceError",
    "QuoteError",
    "ReferenceStoreError",
    "ServiceError",
    "SessionClosedError",
    "SwapBridgeError",
    "TicketError",
    "TicketNotFoundError",
    "TransientServiceError",
    "get_logger",
]
