"""
rgbwallet - RGB wallet client for watch-only node services

Components:
- NodeServiceClient: credential-scoped HTTP client for the node service
- InvoiceCodec: invoice decoding and send-time validation
- SigningAgent: opaque PSBT signing capability (HTTP or local program)
- TransferOrchestrator: begin/sign/end protocol for UTXO creation and sends
- RgbWalletService: result-returning facade for presentation glue
"""

__version__ = "0.3.0"

from rgbwallet.client import NodeServiceClient
from rgbwallet.config import RgbWalletConfig, SignerType
from rgbwallet.invoice import InvoiceCodec
from rgbwallet.service import OperationResult, RgbWalletService, WalletStatus
from rgbwallet.signing import HttpSigningAgent, SigningAgent, SubprocessSigningAgent
from rgbwallet.transfers import (
    CompletedOperation,
    OperationKind,
    OperationState,
    OperationStateError,
    PendingOperation,
    SignedOperation,
    TransferOrchestrator,
)

__all__ = [
    "CompletedOperation",
    "HttpSigningAgent",
    "InvoiceCodec",
    "NodeServiceClient",
    "OperationKind",
    "OperationResult",
    "OperationState",
    "OperationStateError",
    "PendingOperation",
    "RgbWalletConfig",
    "RgbWalletService",
    "SignedOperation",
    "SignerType",
    "SigningAgent",
    "SubprocessSigningAgent",
    "TransferOrchestrator",
    "WalletStatus",
]
