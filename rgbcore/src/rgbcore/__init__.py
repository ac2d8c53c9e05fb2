"""
rgbcore - Core library for RGB wallet components

Provides the shared data models, error taxonomy, at-rest mnemonic
protection and balance formatting.
"""

__version__ = "0.3.0"

from rgbcore.balance import (
    AllocationSummary,
    AssetBalanceView,
    BalanceAggregator,
    BalanceView,
    BtcBalanceView,
    PromptDisplay,
    WalletBalanceView,
    format_amount,
    prompt_display,
)
from rgbcore.errors import (
    InvalidCredentials,
    InvalidInvoice,
    NodeServiceError,
    ProtectionError,
    RgbError,
    SigningError,
)
from rgbcore.models import (
    Asset,
    AssetBalance,
    BalanceInfo,
    BtcBalance,
    Invoice,
    NetworkType,
    Outpoint,
    RgbAllocation,
    Transfer,
    TransferKind,
    TransferStatus,
    UnspentOutput,
    WalletCredentials,
)
from rgbcore.protection import (
    CredentialProtector,
    is_likely_plain_mnemonic,
    load_mnemonic_file,
    save_mnemonic_file,
)

__all__ = [
    "AllocationSummary",
    "Asset",
    "AssetBalance",
    "AssetBalanceView",
    "BalanceAggregator",
    "BalanceInfo",
    "BalanceView",
    "BtcBalance",
    "BtcBalanceView",
    "CredentialProtector",
    "InvalidCredentials",
    "InvalidInvoice",
    "Invoice",
    "NetworkType",
    "NodeServiceError",
    "Outpoint",
    "PromptDisplay",
    "ProtectionError",
    "RgbAllocation",
    "RgbError",
    "SigningError",
    "Transfer",
    "TransferKind",
    "TransferStatus",
    "UnspentOutput",
    "WalletBalanceView",
    "WalletCredentials",
    "format_amount",
    "is_likely_plain_mnemonic",
    "load_mnemonic_file",
    "prompt_display",
    "save_mnemonic_file",
]
