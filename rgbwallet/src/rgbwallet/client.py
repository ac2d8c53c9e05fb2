"""
HTTP client for the RGB node service.

The node service holds UTXO, allocation and transfer state for watch-only
wallets and never sees key material. Every wallet-scoped call carries the
wallet identity as three headers passed with that request only; the
shared httpx client never holds identity state, so concurrent calls for
different wallets cannot pick up each other's headers.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from rgbcore.constants import (
    DEFAULT_BACKUP_PASSWORD,
    DEFAULT_CREATE_UTXOS_FEE_RATE,
    DEFAULT_NODE_TIMEOUT,
    DEFAULT_SEND_ASSET_FEE_RATE,
    DEFAULT_SEND_BTC_FEE_RATE,
    DEFAULT_UTXO_COUNT,
    DEFAULT_UTXO_SIZE,
    WALLET_PATH_PREFIX,
)
from rgbcore.errors import NodeServiceError
from rgbcore.models import (
    Asset,
    AssetBalance,
    BackupResponse,
    BtcBalance,
    GeneratedKeys,
    ListAssetsResponse,
    ReceiveData,
    RegisterResponse,
    SendResult,
    Transfer,
    UnspentOutput,
    WalletCredentials,
)


def make_body(**fields: Any) -> dict[str, Any]:
    """Build a request body, omitting absent fields."""
    return {key: value for key, value in fields.items() if value is not None}


def strip_quotes(text: str) -> str:
    return text.strip().strip('"')


class NodeServiceClient:
    """
    Stateless request/response facade over the node service.

    Args:
        base_url: Node service URL (e.g. http://127.0.0.1:8000)
        timeout: Upper bound for each call in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_NODE_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    async def _post(
        self,
        operation: str,
        credentials: WalletCredentials | None = None,
        body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        POST to /wallet/<operation>.

        Identity headers are built before anything is sent, so missing
        identity fails without a request.

        Raises:
            InvalidCredentials: If credentials lack identity fields
            NodeServiceError: On non-2xx status, timeout or transport failure
        """
        headers = credentials.identity_headers() if credentials is not None else None
        path = f"{WALLET_PATH_PREFIX}/{operation}"

        try:
            response = await self.client.post(path, json=body, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"{operation} timed out after {self.timeout}s")
            raise NodeServiceError(operation, None, f"timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"{operation} request failed: {e}")
            raise NodeServiceError(operation, None, str(e)) from e

        if not response.is_success:
            logger.error(f"{operation} failed ({response.status_code}): {response.text}")
            raise NodeServiceError(operation, response.status_code, response.text)

        logger.debug(f"{operation} -> {response.status_code}")
        return response

    async def _post_json(
        self,
        operation: str,
        credentials: WalletCredentials | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        response = await self._post(operation, credentials, body)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise NodeServiceError(
                operation, response.status_code, f"invalid JSON response: {response.text}"
            ) from e

    async def _post_model(
        self,
        operation: str,
        model: type[Any],
        credentials: WalletCredentials | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        data = await self._post_json(operation, credentials, body)
        if data is None:
            raise NodeServiceError(operation, 200, "empty response")
        try:
            return model.model_validate(data)
        except ValueError as e:
            raise NodeServiceError(operation, 200, f"unexpected response: {e}") from e

    async def _post_list(
        self,
        operation: str,
        model: type[Any],
        credentials: WalletCredentials | None = None,
        body: dict[str, Any] | None = None,
    ) -> list[Any]:
        data = await self._post_json(operation, credentials, body)
        if data is None:
            return []
        try:
            return [model.model_validate(item) for item in data]
        except (TypeError, ValueError) as e:
            raise NodeServiceError(operation, 200, f"unexpected response: {e}") from e

    async def _post_raw(
        self,
        operation: str,
        credentials: WalletCredentials | None = None,
        body: dict[str, Any] | None = None,
    ) -> str:
        """POST and return the bare response text (PSBT, address) without quotes."""
        response = await self._post(operation, credentials, body)
        return strip_quotes(response.text)

    # Wallet lifecycle

    async def register(self, credentials: WalletCredentials) -> RegisterResponse:
        return await self._post_model("register", RegisterResponse, credentials)

    async def generate_keys(self) -> GeneratedKeys:
        return await self._post_model("generate_keys", GeneratedKeys)

    async def get_address(self, credentials: WalletCredentials) -> str:
        return await self._post_raw("address", credentials)

    async def get_btc_balance(self, credentials: WalletCredentials) -> BtcBalance:
        return await self._post_model("btcbalance", BtcBalance, credentials)

    async def refresh(self, credentials: WalletCredentials) -> None:
        await self._post("refresh", credentials)

    async def sync(self, credentials: WalletCredentials) -> None:
        await self._post("sync", credentials)

    async def backup(
        self, credentials: WalletCredentials, password: str = DEFAULT_BACKUP_PASSWORD
    ) -> BackupResponse:
        return await self._post_model(
            "backup", BackupResponse, credentials, make_body(password=password)
        )

    # UTXOs and assets

    async def list_unspents(self, credentials: WalletCredentials) -> list[UnspentOutput]:
        return await self._post_list("listunspents", UnspentOutput, credentials)

    async def list_assets(self, credentials: WalletCredentials) -> list[Asset]:
        response = await self._post_json("listassets", credentials)
        if response is None:
            return []
        try:
            assets = ListAssetsResponse.model_validate(response)
        except ValueError as e:
            raise NodeServiceError("listassets", 200, f"unexpected response: {e}") from e
        return assets.nia + assets.cfa

    async def get_asset_balance(
        self, credentials: WalletCredentials, asset_id: str
    ) -> AssetBalance:
        return await self._post_model(
            "assetbalance", AssetBalance, credentials, make_body(asset_id=asset_id)
        )

    async def issue_asset_nia(
        self,
        credentials: WalletCredentials,
        ticker: str,
        name: str,
        amounts: list[int],
        precision: int = 0,
    ) -> Asset:
        logger.info(f"Issuing asset {ticker}")
        return await self._post_model(
            "issueassetnia",
            Asset,
            credentials,
            make_body(ticker=ticker, name=name, amounts=amounts, precision=precision),
        )

    # Receiving

    async def blind_receive(
        self,
        credentials: WalletCredentials,
        asset_id: str | None = None,
        amount: int | None = None,
        expiration_timestamp: int | None = None,
    ) -> ReceiveData:
        return await self._post_model(
            "blindreceive",
            ReceiveData,
            credentials,
            make_body(asset_id=asset_id, amount=amount, expiration_timestamp=expiration_timestamp),
        )

    async def witness_receive(
        self,
        credentials: WalletCredentials,
        asset_id: str | None = None,
        amount: int | None = None,
        expiration_timestamp: int | None = None,
    ) -> ReceiveData:
        return await self._post_model(
            "witnessreceive",
            ReceiveData,
            credentials,
            make_body(asset_id=asset_id, amount=amount, expiration_timestamp=expiration_timestamp),
        )

    async def decode_rgb_invoice(self, invoice: str) -> dict[str, Any]:
        data = await self._post_json("decodergbinvoice", body=make_body(invoice=invoice))
        if not isinstance(data, dict):
            raise NodeServiceError("decodergbinvoice", 200, f"unexpected response: {data!r}")
        return data

    # Transfers

    async def list_transfers(
        self, credentials: WalletCredentials, asset_id: str | None = None
    ) -> list[Transfer]:
        body = make_body(asset_id=asset_id) or None
        return await self._post_list("listtransfers", Transfer, credentials, body)

    async def fail_transfers(
        self, credentials: WalletCredentials, no_asset_only: bool = True
    ) -> None:
        await self._post("failtransfers", credentials, make_body(no_asset_only=no_asset_only))

    # Two-phase operations: begin returns an unsigned PSBT, end takes the signed one

    async def create_utxos_begin(
        self,
        credentials: WalletCredentials,
        num: int = DEFAULT_UTXO_COUNT,
        size: int = DEFAULT_UTXO_SIZE,
        fee_rate: int = DEFAULT_CREATE_UTXOS_FEE_RATE,
        up_to: bool = True,
    ) -> str:
        return await self._post_raw(
            "createutxosbegin",
            credentials,
            make_body(up_to=up_to, num=num, size=size, fee_rate=fee_rate),
        )

    async def create_utxos_end(self, credentials: WalletCredentials, signed_psbt: str) -> str:
        return await self._post_raw(
            "createutxosend", credentials, make_body(signed_psbt=strip_quotes(signed_psbt))
        )

    async def send_begin(
        self,
        credentials: WalletCredentials,
        invoice: str,
        asset_id: str,
        amount: int,
        fee_rate: int = DEFAULT_SEND_ASSET_FEE_RATE,
    ) -> str:
        return await self._post_raw(
            "sendbegin",
            credentials,
            make_body(invoice=invoice, asset_id=asset_id, amount=amount, fee_rate=fee_rate),
        )

    async def send_end(self, credentials: WalletCredentials, signed_psbt: str) -> SendResult:
        return await self._post_model(
            "sendend", SendResult, credentials, make_body(signed_psbt=strip_quotes(signed_psbt))
        )

    async def send_btc_begin(
        self,
        credentials: WalletCredentials,
        address: str,
        amount: int,
        fee_rate: int = DEFAULT_SEND_BTC_FEE_RATE,
    ) -> str:
        return await self._post_raw(
            "sendbtcbegin",
            credentials,
            make_body(address=address, amount=amount, fee_rate=fee_rate),
        )

    async def send_btc_end(self, credentials: WalletCredentials, signed_psbt: str) -> str:
        data = await self._post_json(
            "sendbtcend", credentials, make_body(signed_psbt=strip_quotes(signed_psbt))
        )
        txid = data.get("txid") if isinstance(data, dict) else None
        if not txid:
            raise NodeServiceError("sendbtcend", 200, "response did not include a txid")
        return txid

    async def close(self) -> None:
        await self.client.aclose()
