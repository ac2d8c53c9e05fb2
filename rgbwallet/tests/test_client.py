"""
Tests for rgbwallet.client
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from rgbcore.constants import (
    HEADER_MASTER_FINGERPRINT,
    HEADER_XPUB_COLORED,
    HEADER_XPUB_VANILLA,
)
from rgbcore.errors import InvalidCredentials, NodeServiceError
from rgbcore.models import WalletCredentials
from rgbwallet.client import NodeServiceClient, make_body, strip_quotes


class TestHelpers:
    def test_make_body_drops_absent_fields(self) -> None:
        assert make_body(a=1, b=None, c=False, d=0) == {"a": 1, "c": False, "d": 0}

    def test_strip_quotes(self) -> None:
        assert strip_quotes('"cHNidP8B"\n') == "cHNidP8B"
        assert strip_quotes("cHNidP8B") == "cHNidP8B"


class TestIdentityHeaders:
    @pytest.mark.asyncio
    async def test_headers_attached_per_request(self, client, fake_node, credentials) -> None:
        fake_node.on("register", {"address": "bcrt1qaddr", "btc_balance": None})

        response = await client.register(credentials)

        assert response.address == "bcrt1qaddr"
        request = fake_node.calls("register")[0]
        assert request.method == "POST"
        assert request.headers[HEADER_XPUB_VANILLA] == "tpubVanilla"
        assert request.headers[HEADER_XPUB_COLORED] == "tpubColored"
        assert request.headers[HEADER_MASTER_FINGERPRINT] == "a1b2c3d4"
        # Identity is never stored on the shared client
        assert HEADER_XPUB_VANILLA not in client.client.headers

    @pytest.mark.asyncio
    async def test_mnemonic_never_sent(self, client, fake_node, credentials) -> None:
        fake_node.on("register", {"address": "bcrt1qaddr"})
        fake_node.on("btcbalance", {})
        fake_node.on("listunspents", [])
        fake_node.on("sendbtcbegin", text='"psbt"')

        await client.register(credentials)
        await client.get_btc_balance(credentials)
        await client.list_unspents(credentials)
        await client.send_btc_begin(credentials, "bcrt1qdest", 1000)

        words = credentials.mnemonic.split()
        for request in fake_node.requests:
            content = request.content.decode()
            headers = " ".join(request.headers.values())
            assert credentials.mnemonic not in content
            assert words[-1] not in headers
            assert "mnemonic" not in content

    @pytest.mark.asyncio
    async def test_concurrent_wallets_do_not_share_headers(
        self, client, fake_node, credentials, other_credentials
    ) -> None:
        balances = {
            "a1b2c3d4": {"vanilla": {"settled": 111}},
            "0badf00d": {"vanilla": {"settled": 222}},
        }

        def balance(request: httpx.Request) -> httpx.Response:
            fingerprint = request.headers[HEADER_MASTER_FINGERPRINT]
            return httpx.Response(200, json=balances[fingerprint])

        fake_node.on_call("btcbalance", balance)

        wallets = [credentials, other_credentials] * 10
        results = await asyncio.gather(*(client.get_btc_balance(c) for c in wallets))

        for creds, result in zip(wallets, results, strict=True):
            expected = 111 if creds is credentials else 222
            assert result.vanilla.settled == expected

        for request in fake_node.calls("btcbalance"):
            pair = (
                request.headers[HEADER_XPUB_VANILLA],
                request.headers[HEADER_MASTER_FINGERPRINT],
            )
            assert pair in {("tpubVanilla", "a1b2c3d4"), ("tpubOtherVanilla", "0badf00d")}

    @pytest.mark.asyncio
    async def test_missing_identity_fails_before_request(self, client, fake_node) -> None:
        creds = WalletCredentials(xpub_vanilla="tpubVanilla", xpub_colored="tpubColored")

        with pytest.raises(InvalidCredentials, match="master_fingerprint"):
            await client.get_address(creds)

        assert fake_node.requests == []

    @pytest.mark.asyncio
    async def test_invoice_decoding_is_not_wallet_scoped(self, client, fake_node) -> None:
        fake_node.on("decodergbinvoice", {"recipient_id": "r", "network": 3})

        data = await client.decode_rgb_invoice("rgb:invoice")

        assert data["recipient_id"] == "r"
        request = fake_node.calls("decodergbinvoice")[0]
        assert HEADER_XPUB_VANILLA not in request.headers
        assert fake_node.body(request) == {"invoice": "rgb:invoice"}


class TestErrors:
    @pytest.mark.asyncio
    async def test_non_success_status(self, client, fake_node, credentials) -> None:
        fake_node.on("sendbegin", text="Insufficient allocations", status=400)

        with pytest.raises(NodeServiceError) as exc_info:
            await client.send_begin(credentials, "rgb:inv", "rgb:A", 10)

        assert exc_info.value.operation == "sendbegin"
        assert exc_info.value.status == 400
        assert exc_info.value.body == "Insufficient allocations"

    @pytest.mark.asyncio
    async def test_transport_failure(self, client, fake_node, credentials) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fake_node.on_call("refresh", refuse)

        with pytest.raises(NodeServiceError) as exc_info:
            await client.refresh(credentials)

        assert exc_info.value.status is None
        assert "connection refused" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_timeout(self, client, fake_node, credentials) -> None:
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        fake_node.on_call("sync", slow)

        with pytest.raises(NodeServiceError, match="timed out") as exc_info:
            await client.sync(credentials)

        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_invalid_json(self, client, fake_node, credentials) -> None:
        fake_node.on("btcbalance", text="<html>oops</html>")

        with pytest.raises(NodeServiceError, match="invalid JSON"):
            await client.get_btc_balance(credentials)

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, client, fake_node, credentials) -> None:
        fake_node.on("register", {"unexpected": True})

        with pytest.raises(NodeServiceError, match="unexpected response"):
            await client.register(credentials)


class TestOperations:
    @pytest.mark.asyncio
    async def test_address_strips_quotes(self, client, fake_node, credentials) -> None:
        fake_node.on("address", text='"bcrt1qnewaddr"')
        assert await client.get_address(credentials) == "bcrt1qnewaddr"

    @pytest.mark.asyncio
    async def test_list_unspents(self, client, fake_node, credentials) -> None:
        fake_node.on(
            "listunspents",
            [
                {
                    "utxo": {
                        "outpoint": {"txid": "ab" * 32, "vout": 0},
                        "btc_amount": 10_000,
                        "colorable": True,
                    },
                    "rgb_allocations": [{"asset_id": "rgb:A", "amount": 5, "settled": True}],
                }
            ],
        )

        unspents = await client.list_unspents(credentials)

        assert len(unspents) == 1
        assert unspents[0].allocations[0].asset_id == "rgb:A"

    @pytest.mark.asyncio
    async def test_list_unspents_null(self, client, fake_node, credentials) -> None:
        fake_node.on("listunspents", None)
        assert await client.list_unspents(credentials) == []

    @pytest.mark.asyncio
    async def test_list_assets_merges_schemas(self, client, fake_node, credentials) -> None:
        fake_node.on(
            "listassets",
            {
                "nia": [{"asset_id": "rgb:A", "ticker": "TST", "precision": 2}],
                "cfa": [{"asset_id": "rgb:C", "name": "Collectible"}],
            },
        )

        assets = await client.list_assets(credentials)

        assert [a.asset_id for a in assets] == ["rgb:A", "rgb:C"]

    @pytest.mark.asyncio
    async def test_asset_balance(self, client, fake_node, credentials) -> None:
        fake_node.on("assetbalance", {"settled": 100, "future": 150, "spendable": 90})

        balance = await client.get_asset_balance(credentials, "rgb:A")

        assert (balance.settled, balance.future, balance.spendable) == (100, 150, 90)
        assert fake_node.last_body("assetbalance") == {"asset_id": "rgb:A"}

    @pytest.mark.asyncio
    async def test_issue_asset_nia(self, client, fake_node, credentials) -> None:
        fake_node.on(
            "issueassetnia",
            {
                "asset_id": "rgb:NEW",
                "ticker": "TST",
                "name": "Test",
                "precision": 2,
                "issued_supply": 1000,
            },
        )

        asset = await client.issue_asset_nia(credentials, "TST", "Test", [1000], precision=2)

        assert asset.asset_id == "rgb:NEW"
        assert fake_node.last_body("issueassetnia") == {
            "ticker": "TST",
            "name": "Test",
            "amounts": [1000],
            "precision": 2,
        }

    @pytest.mark.asyncio
    async def test_receive(self, client, fake_node, credentials) -> None:
        fake_node.on("blindreceive", {"invoice": "rgb:inv1", "recipient_id": "utxob:1"})
        fake_node.on("witnessreceive", {"invoice": "rgb:inv2", "recipient_id": "wvout:2"})

        blind = await client.blind_receive(credentials, asset_id="rgb:A", amount=10)
        witness = await client.witness_receive(credentials)

        assert blind.invoice == "rgb:inv1"
        assert witness.recipient_id == "wvout:2"
        assert fake_node.last_body("blindreceive") == {"asset_id": "rgb:A", "amount": 10}
        assert fake_node.last_body("witnessreceive") == {}

    @pytest.mark.asyncio
    async def test_list_transfers(self, client, fake_node, credentials) -> None:
        fake_node.on(
            "listtransfers",
            [{"idx": 1, "created_at": 1, "updated_at": 2, "status": 0, "kind": 1}],
        )

        all_transfers = await client.list_transfers(credentials)
        await client.list_transfers(credentials, asset_id="rgb:A")

        assert all_transfers[0].kind.is_receive
        first, second = fake_node.calls("listtransfers")
        assert first.content == b""
        assert fake_node.body(second) == {"asset_id": "rgb:A"}

    @pytest.mark.asyncio
    async def test_fail_transfers(self, client, fake_node, credentials) -> None:
        fake_node.on("failtransfers", {})
        await client.fail_transfers(credentials)
        assert fake_node.last_body("failtransfers") == {"no_asset_only": True}

    @pytest.mark.asyncio
    async def test_backup_default_password(self, client, fake_node, credentials) -> None:
        fake_node.on("backup", {"backup": "b64data"})

        result = await client.backup(credentials)

        assert result.backup == "b64data"
        assert fake_node.last_body("backup") == {"password": "backup"}


class TestTwoPhaseCalls:
    @pytest.mark.asyncio
    async def test_create_utxos_defaults(self, client, fake_node, credentials) -> None:
        fake_node.on("createutxosbegin", text='"cHNidP8Bunsigned"')

        psbt = await client.create_utxos_begin(credentials)

        assert psbt == "cHNidP8Bunsigned"
        assert fake_node.last_body("createutxosbegin") == {
            "up_to": True,
            "num": 5,
            "size": 10_000,
            "fee_rate": 2,
        }

    @pytest.mark.asyncio
    async def test_create_utxos_end_strips_signed_quotes(
        self, client, fake_node, credentials
    ) -> None:
        fake_node.on("createutxosend", text="5")

        created = await client.create_utxos_end(credentials, '"cHNidP8Bsigned"')

        assert created == "5"
        assert fake_node.last_body("createutxosend") == {"signed_psbt": "cHNidP8Bsigned"}

    @pytest.mark.asyncio
    async def test_send_asset(self, client, fake_node, credentials) -> None:
        fake_node.on("sendbegin", text='"unsigned"')
        fake_node.on("sendend", {"txid": "cd" * 32, "batch_transfer_idx": 4})

        psbt = await client.send_begin(credentials, "rgb:inv", "rgb:A", 100)
        result = await client.send_end(credentials, psbt + "-signed")

        assert fake_node.last_body("sendbegin") == {
            "invoice": "rgb:inv",
            "asset_id": "rgb:A",
            "amount": 100,
            "fee_rate": 5,
        }
        assert result.txid == "cd" * 32
        assert result.batch_transfer_idx == 4

    @pytest.mark.asyncio
    async def test_send_btc(self, client, fake_node, credentials) -> None:
        fake_node.on("sendbtcbegin", text='"unsigned"')
        fake_node.on("sendbtcend", {"txid": "ef" * 32})

        psbt = await client.send_btc_begin(credentials, "bcrt1qdest", 50_000)
        txid = await client.send_btc_end(credentials, psbt + "-signed")

        assert fake_node.last_body("sendbtcbegin") == {
            "address": "bcrt1qdest",
            "amount": 50_000,
            "fee_rate": 2,
        }
        assert txid == "ef" * 32

    @pytest.mark.asyncio
    async def test_send_btc_end_without_txid(self, client, fake_node, credentials) -> None:
        fake_node.on("sendbtcend", {})

        with pytest.raises(NodeServiceError, match="txid"):
            await client.send_btc_end(credentials, "signed")


@pytest.mark.asyncio
async def test_base_url_trailing_slash(fake_node) -> None:
    client = NodeServiceClient("http://node.test/", transport=fake_node.transport)
    try:
        assert client.base_url == "http://node.test"
    finally:
        await client.close()
