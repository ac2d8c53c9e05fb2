"""
Wallet data models using Pydantic for validation and serialization.

Field names follow the node service's snake_case JSON. Asset amounts are
always unscaled integers; scaling for display lives in rgbcore.balance.
"""

from __future__ import annotations

import time
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from rgbcore.constants import (
    HEADER_MASTER_FINGERPRINT,
    HEADER_XPUB_COLORED,
    HEADER_XPUB_VANILLA,
)
from rgbcore.errors import InvalidCredentials


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"

    @classmethod
    def from_node(cls, value: Any) -> NetworkType:
        """
        Parse the network as reported by the node service.

        The node encodes networks either as an integer code
        (0 mainnet, 1 testnet, 2 signet, 3 regtest) or by name.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid network: {value!r}")
        if isinstance(value, int):
            try:
                return _NETWORK_CODES[value]
            except KeyError:
                raise ValueError(f"Unknown network code: {value}") from None
        if isinstance(value, str):
            name = value.strip().lower()
            if name == "bitcoin":
                return cls.MAINNET
            return cls(name)
        raise ValueError(f"Invalid network: {value!r}")


_NETWORK_CODES: dict[int, NetworkType] = {
    0: NetworkType.MAINNET,
    1: NetworkType.TESTNET,
    2: NetworkType.SIGNET,
    3: NetworkType.REGTEST,
}


class TransferStatus(IntEnum):
    WAITING_COUNTERPARTY = 0
    WAITING_CONFIRMATIONS = 1
    SETTLED = 2
    FAILED = 3


class TransferKind(IntEnum):
    ISSUANCE = 0
    RECEIVE_BLIND = 1
    RECEIVE_WITNESS = 2
    SEND = 3

    @property
    def is_receive(self) -> bool:
        return self in (TransferKind.RECEIVE_BLIND, TransferKind.RECEIVE_WITNESS)

    @property
    def is_send(self) -> bool:
        return self is TransferKind.SEND


def _parse_int_enum(enum_cls: type[IntEnum], value: Any) -> Any:
    """Accept either the integer code or the CamelCase name the node may emit."""
    if isinstance(value, str) and not value.isdigit():
        normalized = "".join(
            f"_{c}" if c.isupper() and i > 0 else c for i, c in enumerate(value)
        ).upper()
        try:
            return enum_cls[normalized]
        except KeyError:
            raise ValueError(f"Unknown {enum_cls.__name__}: {value}") from None
    return value


class WalletCredentials(BaseModel):
    """
    Credential bundle for one logical wallet operation.

    The mnemonic is only present client-side for signing. It is never sent
    to the node service and is hidden from repr. Two bundles are equal when
    they identify the same wallet (both xpubs and the master fingerprint).
    """

    xpub_vanilla: str = ""
    xpub_colored: str = ""
    master_fingerprint: str = ""
    mnemonic: str | None = Field(default=None, repr=False)
    node_endpoint: str = ""
    network: NetworkType = NetworkType.MAINNET

    model_config = {"frozen": True}

    @property
    def routing_key(self) -> tuple[str, str, str]:
        return (self.xpub_vanilla, self.xpub_colored, self.master_fingerprint)

    @property
    def has_mnemonic(self) -> bool:
        return bool(self.mnemonic)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WalletCredentials):
            return NotImplemented
        return self.routing_key == other.routing_key

    def __hash__(self) -> int:
        return hash(self.routing_key)

    def require_identity(self) -> None:
        """Fail fast when any identity field needed by the node service is missing."""
        missing = [
            name
            for name, value in (
                ("xpub_vanilla", self.xpub_vanilla),
                ("xpub_colored", self.xpub_colored),
                ("master_fingerprint", self.master_fingerprint),
            )
            if not value
        ]
        if missing:
            raise InvalidCredentials(f"Missing wallet identity: {', '.join(missing)}")

    def require_mnemonic(self) -> None:
        self.require_identity()
        if not self.mnemonic:
            raise InvalidCredentials("Mnemonic required for signing")

    def identity_headers(self) -> dict[str, str]:
        self.require_identity()
        return {
            HEADER_XPUB_VANILLA: self.xpub_vanilla,
            HEADER_XPUB_COLORED: self.xpub_colored,
            HEADER_MASTER_FINGERPRINT: self.master_fingerprint,
        }

    def without_mnemonic(self) -> WalletCredentials:
        return self.model_copy(update={"mnemonic": None})


class Outpoint(BaseModel):
    txid: str
    vout: int = Field(..., ge=0)

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"


class RgbAllocation(BaseModel):
    asset_id: str = ""
    amount: int = Field(default=0, ge=0)
    settled: bool = False


class UnspentOutput(BaseModel):
    """
    UTXO with its RGB allocations.

    The node nests the output fields under "utxo" and the allocations under
    "rgb_allocations"; both the nested and the flat shape are accepted.
    """

    outpoint: Outpoint
    btc_amount: int = Field(default=0, ge=0)
    colorable: bool = False
    allocations: list[RgbAllocation] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def flatten_node_shape(cls, data: Any) -> Any:
        if isinstance(data, dict) and "utxo" in data:
            utxo = data.get("utxo") or {}
            return {
                "outpoint": utxo.get("outpoint"),
                "btc_amount": utxo.get("btc_amount", 0),
                "colorable": utxo.get("colorable", False),
                "allocations": data.get("rgb_allocations") or [],
            }
        return data

    @property
    def is_free(self) -> bool:
        """Colorable output that carries no allocation yet."""
        return self.colorable and not self.allocations


class Asset(BaseModel):
    """
    RGB asset as listed by the node.

    precision is kept as reported, even when missing or negative, so one bad
    asset does not fail a whole listing; display code refuses to scale it.
    """

    asset_id: str
    ticker: str = ""
    name: str = ""
    precision: int | None = None
    issued_supply: int = Field(default=0, ge=0)


class ListAssetsResponse(BaseModel):
    nia: list[Asset] = Field(default_factory=list)
    cfa: list[Asset] = Field(default_factory=list)

    @field_validator("nia", "cfa", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return v if v is not None else []


class BalanceInfo(BaseModel):
    """Per-state liquidity. Spendable is node-authoritative, never derived."""

    settled: int = Field(default=0, ge=0)
    future: int = Field(default=0, ge=0)
    spendable: int = Field(default=0, ge=0)


class AssetBalance(BalanceInfo):
    pass


class BtcBalance(BaseModel):
    vanilla: BalanceInfo = Field(default_factory=BalanceInfo)
    colored: BalanceInfo = Field(default_factory=BalanceInfo)


class RegisterResponse(BaseModel):
    address: str
    btc_balance: BtcBalance | None = None


class GeneratedKeys(BaseModel):
    mnemonic: str = Field(repr=False)
    xpub: str = ""
    account_xpub_vanilla: str
    account_xpub_colored: str
    master_fingerprint: str

    def to_credentials(
        self, node_endpoint: str = "", network: NetworkType = NetworkType.MAINNET
    ) -> WalletCredentials:
        return WalletCredentials(
            xpub_vanilla=self.account_xpub_vanilla,
            xpub_colored=self.account_xpub_colored,
            master_fingerprint=self.master_fingerprint,
            mnemonic=self.mnemonic,
            node_endpoint=node_endpoint,
            network=network,
        )


class ReceiveData(BaseModel):
    invoice: str
    recipient_id: str = ""
    expiration_timestamp: int | None = None
    batch_transfer_idx: int | None = None


class Invoice(BaseModel):
    """
    Decoded RGB invoice.

    assignment_amount None means the sender chooses the amount;
    asset_id None means a bitcoin-only invoice.
    """

    recipient_id: str
    asset_id: str | None = None
    assignment_amount: int | None = Field(default=None, ge=0)
    expiration_timestamp: int | None = None
    network: NetworkType

    model_config = {"frozen": True}

    @field_validator("network", mode="before")
    @classmethod
    def parse_network(cls, v: Any) -> NetworkType:
        return NetworkType.from_node(v)

    @classmethod
    def from_node(cls, data: dict[str, Any]) -> Invoice:
        """Map a decodergbinvoice response onto an Invoice."""
        return cls(
            recipient_id=data["recipient_id"],
            asset_id=data.get("asset_id") or None,
            assignment_amount=_assignment_amount(data.get("assignment")),
            expiration_timestamp=data.get("expiration_timestamp"),
            network=data["network"],
        )

    def is_expired(self, now: float | None = None) -> bool:
        if self.expiration_timestamp is None:
            return False
        current = time.time() if now is None else now
        return self.expiration_timestamp <= current


def _assignment_amount(assignment: Any) -> int | None:
    # Seen as {"amount": n}, {"Fungible": n}, a bare integer, or "Any"/null
    if assignment is None or isinstance(assignment, str):
        return None
    if isinstance(assignment, bool):
        raise ValueError(f"Invalid assignment: {assignment!r}")
    if isinstance(assignment, int):
        return assignment
    if isinstance(assignment, dict):
        for key in ("amount", "Fungible", "fungible"):
            if key in assignment:
                return assignment[key]
        return None
    raise ValueError(f"Invalid assignment: {assignment!r}")


class Transfer(BaseModel):
    idx: int
    created_at: int
    updated_at: int
    status: TransferStatus
    amount: int = Field(default=0, ge=0)
    kind: TransferKind
    txid: str | None = None
    recipient_id: str | None = None
    receive_utxo: Outpoint | None = None

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> Any:
        return _parse_int_enum(TransferStatus, v)

    @field_validator("kind", mode="before")
    @classmethod
    def parse_kind(cls, v: Any) -> Any:
        return _parse_int_enum(TransferKind, v)

    @property
    def is_pending(self) -> bool:
        return self.status in (
            TransferStatus.WAITING_COUNTERPARTY,
            TransferStatus.WAITING_CONFIRMATIONS,
        )


class SendResult(BaseModel):
    txid: str
    batch_transfer_idx: int | None = None


class BackupResponse(BaseModel):
    backup: str | None = None
    download_url: str | None = None
