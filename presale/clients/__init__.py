"""
预售系统 — 外部服务客户端
"""

from .base import HttpServiceClient, ProofServiceClient, SwapBridgeClient
from .envelope import ProofEnvelope
from .oneclick import OneClickClient
from .tee import TEEProofClient

__all__ = [
    "HttpServiceClient",
    "OneClickClient",
    "ProofEnvelope",
    "ProofServiceClient",
    "SwapBridgeClient",
    "TEEProofClient",
]
