"""
Configuration for the RGB wallet client.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from rgbcore.constants import (
    DEFAULT_CREATE_UTXOS_FEE_RATE,
    DEFAULT_NODE_TIMEOUT,
    DEFAULT_SEND_ASSET_FEE_RATE,
    DEFAULT_SEND_BTC_FEE_RATE,
    DEFAULT_SIGNER_TIMEOUT,
    DEFAULT_UTXO_COUNT,
    DEFAULT_UTXO_SIZE,
)
from rgbcore.models import NetworkType


class SignerType(str, Enum):
    HTTP = "http"
    SUBPROCESS = "subprocess"


class RgbWalletConfig(BaseModel):
    """Configuration for talking to the node service and the signing agent."""

    # Node service
    node_url: str = "http://127.0.0.1:8000"
    network: NetworkType = NetworkType.MAINNET
    request_timeout_sec: float = Field(default=DEFAULT_NODE_TIMEOUT, ge=1.0, le=300.0)

    # Signing agent. Must be a different service than the node: it receives the mnemonic.
    signer_type: SignerType = SignerType.HTTP
    signer_url: str | None = None
    signer_command: list[str] = Field(default_factory=list)
    signer_timeout_sec: float = Field(default=DEFAULT_SIGNER_TIMEOUT, ge=1.0, le=600.0)

    # Fee rates in sat/vB
    create_utxos_fee_rate: int = Field(default=DEFAULT_CREATE_UTXOS_FEE_RATE, ge=1)
    send_btc_fee_rate: int = Field(default=DEFAULT_SEND_BTC_FEE_RATE, ge=1)
    send_asset_fee_rate: int = Field(default=DEFAULT_SEND_ASSET_FEE_RATE, ge=1)

    # Colorable UTXO batch
    utxo_count: int = Field(default=DEFAULT_UTXO_COUNT, ge=1, le=100)
    utxo_size: int = Field(default=DEFAULT_UTXO_SIZE, ge=1, description="Satoshis per UTXO")

    # At-rest mnemonic storage
    mnemonic_file: Path | None = None
    protection_key_file: Path = Field(
        default_factory=lambda: Path.home() / ".rgb" / "protection.key"
    )

    @model_validator(mode="after")
    def check_signer(self) -> RgbWalletConfig:
        if self.signer_type == SignerType.HTTP and self.signer_url:
            if self.signer_url.rstrip("/") == self.node_url.rstrip("/"):
                raise ValueError("signer_url must not point at the node service")
        if self.signer_type == SignerType.SUBPROCESS and not self.signer_command:
            raise ValueError("signer_command is required for the subprocess signer")
        return self

    @property
    def has_signer(self) -> bool:
        if self.signer_type == SignerType.SUBPROCESS:
            return bool(self.signer_command)
        return bool(self.signer_url)
