"""
Two-phase transaction orchestration: begin -> sign -> end.

Each operation family (create colorable UTXOs, send bitcoin, send an RGB
asset) has the same shape:

1. begin: the node assembles an unsigned PSBT for the intent. No resource
   is reserved on the node, so an operation that is never ended needs no
   cleanup.
2. sign: the unsigned PSBT and the full credentials (mnemonic included)
   go to the signing agent. The node service is not contacted.
3. end: the signed PSBT goes back to the node, which validates and
   broadcasts it.

Nothing here retries; callers own retry policy. Sequencing two operations
that spend the same UTXO is also the caller's responsibility.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from rgbcore.constants import (
    DEFAULT_CREATE_UTXOS_FEE_RATE,
    DEFAULT_SEND_ASSET_FEE_RATE,
    DEFAULT_SEND_BTC_FEE_RATE,
    DEFAULT_UTXO_COUNT,
    DEFAULT_UTXO_SIZE,
)
from rgbcore.errors import InvalidInvoice, NodeServiceError, RgbError, SigningError
from rgbcore.models import WalletCredentials
from rgbwallet.client import NodeServiceClient
from rgbwallet.invoice import InvoiceCodec
from rgbwallet.signing import SigningAgent


class OperationKind(str, Enum):
    CREATE_UTXOS = "create_utxos"
    SEND_BTC = "send_btc"
    SEND_ASSET = "send_asset"


class OperationState(str, Enum):
    BEGUN = "begun"
    AWAITING_SIGNATURE = "awaiting_signature"
    ENDED = "ended"
    ABANDONED = "abandoned"


class OperationStateError(RgbError):
    """An operation was used out of order (ended twice, signed after abandon...)."""

    pass


@dataclass
class PendingOperation:
    """Unsigned PSBT produced by a begin call, held by the caller until signed."""

    kind: OperationKind
    unsigned_psbt: str
    params: dict[str, Any] = field(default_factory=dict)
    state: OperationState = OperationState.BEGUN

    def with_signature(self, signed_psbt: str) -> SignedOperation:
        if self.state != OperationState.AWAITING_SIGNATURE:
            raise OperationStateError(
                f"Cannot sign a {self.kind.value} operation in state {self.state.value}"
            )
        if not signed_psbt:
            raise SigningError("Signed PSBT is empty")
        return SignedOperation(kind=self.kind, signed_psbt=signed_psbt, pending=self)

    def abandon(self) -> None:
        """Give up before end. The node holds no lock, so nothing is released."""
        if self.state == OperationState.ENDED:
            raise OperationStateError("Operation already ended")
        self.state = OperationState.ABANDONED


@dataclass(frozen=True)
class SignedOperation:
    """Signed PSBT ready for end. Only obtainable from a PendingOperation."""

    kind: OperationKind
    signed_psbt: str
    pending: PendingOperation = field(repr=False, compare=False)


@dataclass(frozen=True)
class CompletedOperation:
    kind: OperationKind
    txid: str | None = None
    batch_transfer_idx: int | None = None
    utxos_created: int | None = None


def _parse_utxos_created(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise NodeServiceError(
            "createutxosend", 200, f"expected a UTXO count, got {text!r}"
        ) from None


class TransferOrchestrator:
    """
    Drives the begin/sign/end protocol against the node service and a signing agent.

    Args:
        client: Node service client
        signer: Signing agent used by sign() and the full-cycle helpers
        codec: Invoice codec (built from client if omitted)
    """

    def __init__(
        self,
        client: NodeServiceClient,
        signer: SigningAgent | None = None,
        codec: InvoiceCodec | None = None,
    ):
        self.client = client
        self.signer = signer
        self.codec = codec or InvoiceCodec(client)

    @staticmethod
    def _pending(kind: OperationKind, psbt: str, **params: Any) -> PendingOperation:
        if not psbt:
            raise NodeServiceError(f"{kind.value} begin", 200, "node returned an empty PSBT")
        operation = PendingOperation(kind=kind, unsigned_psbt=psbt, params=params)
        operation.state = OperationState.AWAITING_SIGNATURE
        return operation

    @staticmethod
    def _signed_psbt(signed: SignedOperation | str, kind: OperationKind) -> str:
        if isinstance(signed, str):
            if not signed:
                raise SigningError("Signed PSBT is empty")
            return signed
        if signed.kind != kind:
            raise OperationStateError(
                f"Cannot end a {signed.kind.value} operation as {kind.value}"
            )
        if signed.pending.state != OperationState.AWAITING_SIGNATURE:
            raise OperationStateError(
                f"Cannot end a {kind.value} operation in state {signed.pending.state.value}"
            )
        return signed.signed_psbt

    @staticmethod
    def _mark_ended(signed: SignedOperation | str) -> None:
        if isinstance(signed, SignedOperation):
            signed.pending.state = OperationState.ENDED

    # Create colorable UTXOs

    async def create_utxos_begin(
        self,
        credentials: WalletCredentials,
        num: int = DEFAULT_UTXO_COUNT,
        size: int = DEFAULT_UTXO_SIZE,
        fee_rate: int = DEFAULT_CREATE_UTXOS_FEE_RATE,
        up_to: bool = True,
    ) -> PendingOperation:
        credentials.require_identity()
        if num <= 0 or size <= 0 or fee_rate <= 0:
            raise ValueError("num, size and fee_rate must be positive")
        psbt = await self.client.create_utxos_begin(
            credentials, num=num, size=size, fee_rate=fee_rate, up_to=up_to
        )
        return self._pending(
            OperationKind.CREATE_UTXOS, psbt, num=num, size=size, fee_rate=fee_rate, up_to=up_to
        )

    async def create_utxos_end(
        self, credentials: WalletCredentials, signed: SignedOperation | str
    ) -> CompletedOperation:
        """
        Broadcast the create-UTXOs transaction.

        A node report that allocations are already available is a success
        with zero UTXOs created.
        """
        psbt = self._signed_psbt(signed, OperationKind.CREATE_UTXOS)
        try:
            created = _parse_utxos_created(await self.client.create_utxos_end(credentials, psbt))
        except NodeServiceError as e:
            if not e.allocations_already_available:
                raise
            logger.warning("Colorable UTXOs already available, none created")
            created = 0
        else:
            logger.info(f"Created {created} colorable UTXOs")
        self._mark_ended(signed)
        return CompletedOperation(kind=OperationKind.CREATE_UTXOS, utxos_created=created)

    # Send bitcoin

    async def send_btc_begin(
        self,
        credentials: WalletCredentials,
        address: str,
        amount: int,
        fee_rate: int = DEFAULT_SEND_BTC_FEE_RATE,
    ) -> PendingOperation:
        credentials.require_identity()
        if not address:
            raise ValueError("Destination address required")
        if amount <= 0 or fee_rate <= 0:
            raise ValueError("amount and fee_rate must be positive")
        psbt = await self.client.send_btc_begin(credentials, address, amount, fee_rate)
        return self._pending(
            OperationKind.SEND_BTC, psbt, address=address, amount=amount, fee_rate=fee_rate
        )

    async def send_btc_end(
        self, credentials: WalletCredentials, signed: SignedOperation | str
    ) -> CompletedOperation:
        psbt = self._signed_psbt(signed, OperationKind.SEND_BTC)
        txid = await self.client.send_btc_end(credentials, psbt)
        self._mark_ended(signed)
        logger.info(f"Broadcast BTC send {txid}")
        return CompletedOperation(kind=OperationKind.SEND_BTC, txid=txid)

    # Send an RGB asset

    async def send_asset_begin(
        self,
        credentials: WalletCredentials,
        invoice: str,
        amount: int | None = None,
        asset_id: str | None = None,
        fee_rate: int = DEFAULT_SEND_ASSET_FEE_RATE,
        now: float | None = None,
    ) -> PendingOperation:
        """
        Decode and validate the invoice, then ask the node for the send PSBT.

        The asset and amount come from the invoice when it fixes them; an
        explicit value must then agree with it. When the invoice leaves
        them open, the caller must supply them.

        Raises:
            InvalidInvoice: Expired, wrong network, bitcoin-only, or
                conflicting/missing asset or amount
        """
        credentials.require_identity()
        if fee_rate <= 0:
            raise ValueError("fee_rate must be positive")

        decoded = await self.codec.decode_for_send(invoice, credentials.network, now)

        if decoded.asset_id and asset_id and decoded.asset_id != asset_id:
            raise InvalidInvoice(f"Invoice requests asset {decoded.asset_id}, not {asset_id}")
        send_asset_id = decoded.asset_id or asset_id
        if not send_asset_id:
            raise InvalidInvoice("Invoice does not name an asset and none was given")

        if decoded.assignment_amount is not None and amount is not None:
            if decoded.assignment_amount != amount:
                raise InvalidInvoice(
                    f"Invoice requests {decoded.assignment_amount}, not {amount}"
                )
        send_amount = decoded.assignment_amount if decoded.assignment_amount is not None else amount
        if send_amount is None:
            raise InvalidInvoice("Invoice does not fix an amount and none was given")
        if send_amount <= 0:
            raise InvalidInvoice(f"Invalid amount: {send_amount}")

        psbt = await self.client.send_begin(
            credentials, invoice.strip(), send_asset_id, send_amount, fee_rate
        )
        return self._pending(
            OperationKind.SEND_ASSET,
            psbt,
            recipient_id=decoded.recipient_id,
            asset_id=send_asset_id,
            amount=send_amount,
            fee_rate=fee_rate,
        )

    async def send_asset_end(
        self, credentials: WalletCredentials, signed: SignedOperation | str
    ) -> CompletedOperation:
        psbt = self._signed_psbt(signed, OperationKind.SEND_ASSET)
        result = await self.client.send_end(credentials, psbt)
        self._mark_ended(signed)
        logger.info(f"Broadcast asset send {result.txid}")
        return CompletedOperation(
            kind=OperationKind.SEND_ASSET,
            txid=result.txid,
            batch_transfer_idx=result.batch_transfer_idx,
        )

    # Signing and dispatch

    async def sign(
        self, pending: PendingOperation, credentials: WalletCredentials
    ) -> SignedOperation:
        """
        Have the signing agent sign a pending operation.

        The node service is not contacted; a failure leaves the pending
        operation awaiting signature.
        """
        if self.signer is None:
            raise SigningError("No signing agent configured")
        if pending.state != OperationState.AWAITING_SIGNATURE:
            raise OperationStateError(
                f"Cannot sign a {pending.kind.value} operation in state {pending.state.value}"
            )
        signed_psbt = await self.signer.sign(pending.unsigned_psbt, credentials)
        return pending.with_signature(signed_psbt)

    async def end(
        self, credentials: WalletCredentials, signed: SignedOperation
    ) -> CompletedOperation:
        if signed.kind == OperationKind.CREATE_UTXOS:
            return await self.create_utxos_end(credentials, signed)
        if signed.kind == OperationKind.SEND_BTC:
            return await self.send_btc_end(credentials, signed)
        return await self.send_asset_end(credentials, signed)

    # Full cycles

    async def create_utxos(
        self,
        credentials: WalletCredentials,
        num: int = DEFAULT_UTXO_COUNT,
        size: int = DEFAULT_UTXO_SIZE,
        fee_rate: int = DEFAULT_CREATE_UTXOS_FEE_RATE,
    ) -> CompletedOperation:
        try:
            pending = await self.create_utxos_begin(credentials, num, size, fee_rate)
        except NodeServiceError as e:
            # The node usually detects this while assembling the PSBT
            if not e.allocations_already_available:
                raise
            logger.warning("Colorable UTXOs already available, none created")
            return CompletedOperation(kind=OperationKind.CREATE_UTXOS, utxos_created=0)
        signed = await self.sign(pending, credentials)
        return await self.create_utxos_end(credentials, signed)

    async def send_btc(
        self,
        credentials: WalletCredentials,
        address: str,
        amount: int,
        fee_rate: int = DEFAULT_SEND_BTC_FEE_RATE,
    ) -> CompletedOperation:
        pending = await self.send_btc_begin(credentials, address, amount, fee_rate)
        signed = await self.sign(pending, credentials)
        return await self.send_btc_end(credentials, signed)

    async def send_asset(
        self,
        credentials: WalletCredentials,
        invoice: str,
        amount: int | None = None,
        asset_id: str | None = None,
        fee_rate: int = DEFAULT_SEND_ASSET_FEE_RATE,
    ) -> CompletedOperation:
        pending = await self.send_asset_begin(credentials, invoice, amount, asset_id, fee_rate)
        signed = await self.sign(pending, credentials)
        return await self.send_asset_end(credentials, signed)
