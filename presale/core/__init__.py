"""
预售系统 — 核心编排
"""

from .availability import AuthorizationResult, AvailabilityGuard
from .orchestrator import PurchaseOrchestrator
from .poller import StatusHandler, StatusPoller, classify_status
from .proof import ProofOutcome, ProofRequester
from .quotes import QuoteAcquirer
from .session import PurchaseSession, SessionStatus

__all__ = [
    "AuthorizationResult",
    "AvailabilityGuard",
    "ProofOutcome",
    "ProofRequester",
    "PurchaseOrchestrator",
    "PurchaseSession",
    "QuoteAcquirer",
    "SessionStatus",
    "StatusHandler",
    "StatusPoller",
    "classify_status",
]
