"""
Result-returning wallet facade for presentation and plugin glue.

Every call takes the credentials for that call only; nothing secret is
kept between calls. Typed wallet errors are converted to failed
OperationResults here, so callers never see raw exceptions.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel

from rgbcore.balance import BalanceAggregator, WalletBalanceView
from rgbcore.errors import InvalidCredentials, RgbError, SigningError
from rgbcore.models import AssetBalance, BtcBalance, WalletCredentials
from rgbwallet.client import NodeServiceClient
from rgbwallet.config import RgbWalletConfig, SignerType
from rgbwallet.signing import HttpSigningAgent, SigningAgent, SubprocessSigningAgent
from rgbwallet.transfers import TransferOrchestrator


class OperationResult(BaseModel):
    success: bool
    error: str | None = None
    data: Any = None


class WalletStatus(BaseModel):
    signer_configured: bool
    wallet_initialized: bool
    has_mnemonic: bool
    connected: bool
    btc_balance: BtcBalance | None = None


def build_signer(config: RgbWalletConfig) -> SigningAgent | None:
    if config.signer_type == SignerType.SUBPROCESS:
        return SubprocessSigningAgent(config.signer_command, timeout=config.signer_timeout_sec)
    if config.signer_url:
        return HttpSigningAgent(config.signer_url, timeout=config.signer_timeout_sec)
    return None


class RgbWalletService:
    """
    Wallet operations returning OperationResult instead of raising.

    Args:
        client: Node service client
        signer: Signing agent (required for the send/create flows)
        config: Defaults for fee rates and UTXO batches
    """

    def __init__(
        self,
        client: NodeServiceClient,
        signer: SigningAgent | None = None,
        config: RgbWalletConfig | None = None,
    ):
        self.client = client
        self.signer = signer
        self.config = config or RgbWalletConfig(node_url=client.base_url)
        self.orchestrator = TransferOrchestrator(client, signer)
        self.aggregator = BalanceAggregator()
        # Wallets registered through this service, by routing key (no secrets)
        self._registered: set[tuple[str, str, str]] = set()

    @classmethod
    def from_config(
        cls, config: RgbWalletConfig, transport: httpx.AsyncBaseTransport | None = None
    ) -> RgbWalletService:
        client = NodeServiceClient(
            config.node_url, timeout=config.request_timeout_sec, transport=transport
        )
        return cls(client, build_signer(config), config)

    async def _run(self, operation: str, call: Awaitable[Any]) -> OperationResult:
        try:
            data = await call
        except (RgbError, ValueError) as e:
            logger.warning(f"{operation} failed: {e}")
            return OperationResult(success=False, error=str(e))
        return OperationResult(success=True, data=data)

    def _check_endpoint(self, credentials: WalletCredentials) -> None:
        if not credentials.xpub_vanilla:
            raise InvalidCredentials("Vanilla xpub is required")
        if not credentials.node_endpoint:
            raise InvalidCredentials("RGB node endpoint is required")
        if credentials.node_endpoint.rstrip("/") != self.client.base_url:
            raise InvalidCredentials(
                f"Credentials target {credentials.node_endpoint}, "
                f"service is bound to {self.client.base_url}"
            )

    async def init_wallet(self, credentials: WalletCredentials) -> OperationResult:
        async def register() -> Any:
            self._check_endpoint(credentials)
            response = await self.client.register(credentials)
            self._registered.add(credentials.routing_key)
            logger.info(f"Registered wallet {credentials.master_fingerprint}")
            return response

        return await self._run("init_wallet", register())

    async def get_status(self, credentials: WalletCredentials) -> WalletStatus:
        initialized = credentials.routing_key in self._registered
        status = WalletStatus(
            signer_configured=self.signer is not None,
            wallet_initialized=initialized,
            has_mnemonic=credentials.has_mnemonic,
            connected=initialized,
        )
        if initialized:
            try:
                status.btc_balance = await self.client.get_btc_balance(credentials)
            except RgbError as e:
                logger.debug(f"Status without balance: {e}")
        return status

    async def get_balances(self, credentials: WalletCredentials) -> OperationResult:
        return await self._run("get_balances", self._wallet_view(credentials))

    async def _wallet_view(self, credentials: WalletCredentials) -> WalletBalanceView:
        btc_balance, assets, unspents = await asyncio.gather(
            self.client.get_btc_balance(credentials),
            self.client.list_assets(credentials),
            self.client.list_unspents(credentials),
        )
        balances: dict[str, AssetBalance] = {}
        for asset in assets:
            balances[asset.asset_id] = await self.client.get_asset_balance(
                credentials, asset.asset_id
            )
        return self.aggregator.wallet_view(btc_balance, assets, balances, unspents)

    async def create_utxos(
        self,
        credentials: WalletCredentials,
        num: int | None = None,
        size: int | None = None,
    ) -> OperationResult:
        result = await self._run(
            "create_utxos",
            self.orchestrator.create_utxos(
                credentials,
                num=num or self.config.utxo_count,
                size=size or self.config.utxo_size,
                fee_rate=self.config.create_utxos_fee_rate,
            ),
        )
        if result.success:
            result.data = {"utxos_created": result.data.utxos_created}
        return result

    async def issue_asset_nia(
        self,
        credentials: WalletCredentials,
        ticker: str,
        name: str,
        amounts: list[int],
        precision: int = 0,
    ) -> OperationResult:
        return await self._run(
            "issue_asset_nia",
            self.client.issue_asset_nia(credentials, ticker, name, amounts, precision),
        )

    async def send_btc(
        self,
        credentials: WalletCredentials,
        address: str,
        amount: int,
        fee_rate: int | None = None,
    ) -> OperationResult:
        result = await self._run(
            "send_btc",
            self.orchestrator.send_btc(
                credentials, address, amount, fee_rate or self.config.send_btc_fee_rate
            ),
        )
        if result.success:
            result.data = {"txid": result.data.txid}
        return result

    async def send_rgb(
        self,
        credentials: WalletCredentials,
        invoice: str,
        amount: int | None = None,
        asset_id: str | None = None,
        fee_rate: int | None = None,
    ) -> OperationResult:
        result = await self._run(
            "send_rgb",
            self.orchestrator.send_asset(
                credentials,
                invoice,
                amount=amount,
                asset_id=asset_id,
                fee_rate=fee_rate or self.config.send_asset_fee_rate,
            ),
        )
        if result.success:
            result.data = {
                "txid": result.data.txid,
                "batch_transfer_idx": result.data.batch_transfer_idx,
            }
        return result

    async def sign_psbt(self, credentials: WalletCredentials, psbt: str) -> OperationResult:
        async def sign() -> str:
            if self.signer is None:
                raise SigningError("No signing agent configured")
            return await self.signer.sign(psbt, credentials)

        return await self._run("sign_psbt", sign())

    async def dispose(self) -> OperationResult:
        """Close connections. Disposal errors are logged, never raised."""
        for name, resource in (("signer", self.signer), ("client", self.client)):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"Ignoring error while closing {name}: {e}")
        self._registered.clear()
        return OperationResult(success=True, data={"status": "disposed"})
