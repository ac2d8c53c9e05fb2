"""
Pytest configuration and fixtures for rgbwallet tests.

The node service and the HTTP signer are replaced by in-process handlers
mounted on httpx.MockTransport, so every request the client makes can be
inspected.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio

from rgbcore.models import NetworkType, WalletCredentials
from rgbwallet.client import NodeServiceClient
from rgbwallet.signing import HttpSigningAgent, SigningAgent

NODE_URL = "http://node.test"
SIGNER_URL = "http://signer.test"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeNode:
    """Routes /wallet/<operation> requests to canned responses and records them."""

    def __init__(self) -> None:
        self.routes: dict[str, Handler] = {}
        self.requests: list[httpx.Request] = []

    def on(
        self,
        operation: str,
        json_body: Any = None,
        text: str | None = None,
        status: int = 200,
    ) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if text is not None:
                return httpx.Response(status, text=text)
            return httpx.Response(status, json=json_body)

        self.routes[operation] = respond

    def on_call(self, operation: str, handler: Handler) -> None:
        self.routes[operation] = handler

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        operation = request.url.path.removeprefix("/wallet/")
        route = self.routes.get(operation)
        if route is None:
            return httpx.Response(404, text=f"no route for {operation}")
        return route(request)

    def calls(self, operation: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == f"/wallet/{operation}"]

    def operations(self) -> list[str]:
        return [r.url.path.removeprefix("/wallet/") for r in self.requests]

    @staticmethod
    def body(request: httpx.Request) -> dict[str, Any]:
        return json.loads(request.content) if request.content else {}

    def last_body(self, operation: str) -> dict[str, Any]:
        return self.body(self.calls(operation)[-1])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeSigner(SigningAgent):
    """Signing agent that appends a marker to the PSBT and records what it saw."""

    def __init__(self, suffix: str = "-signed", error: Exception | None = None) -> None:
        self.suffix = suffix
        self.error = error
        self.calls: list[tuple[str, WalletCredentials]] = []
        self.closed = False

    async def sign(self, psbt: str, credentials: WalletCredentials) -> str:
        credentials.require_mnemonic()
        self.calls.append((psbt, credentials))
        if self.error is not None:
            raise self.error
        return psbt + self.suffix

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def sample_mnemonic() -> str:
    """Test mnemonic (BIP39 test vector, not for production use!)."""
    return (
        "abandon abandon abandon abandon abandon abandon "
        "abandon abandon abandon abandon abandon about"
    )


@pytest.fixture
def credentials(sample_mnemonic: str) -> WalletCredentials:
    return WalletCredentials(
        xpub_vanilla="tpubVanilla",
        xpub_colored="tpubColored",
        master_fingerprint="a1b2c3d4",
        mnemonic=sample_mnemonic,
        node_endpoint=NODE_URL,
        network=NetworkType.REGTEST,
    )


@pytest.fixture
def other_credentials() -> WalletCredentials:
    return WalletCredentials(
        xpub_vanilla="tpubOtherVanilla",
        xpub_colored="tpubOtherColored",
        master_fingerprint="0badf00d",
        mnemonic="legal winner thank year wave sausage worth useful legal winner thank yellow",
        node_endpoint=NODE_URL,
        network=NetworkType.REGTEST,
    )


@pytest.fixture
def fake_node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def fake_signer() -> FakeSigner:
    return FakeSigner()


@pytest_asyncio.fixture
async def client(fake_node: FakeNode) -> AsyncGenerator[NodeServiceClient, None]:
    node_client = NodeServiceClient(NODE_URL, timeout=5.0, transport=fake_node.transport)
    yield node_client
    await node_client.close()


@pytest_asyncio.fixture
async def http_signer_factory() -> AsyncGenerator[Callable[[Handler], HttpSigningAgent], None]:
    agents: list[HttpSigningAgent] = []

    def build(handler: Handler) -> HttpSigningAgent:
        agent = HttpSigningAgent(
            SIGNER_URL, timeout=5.0, transport=httpx.MockTransport(handler)
        )
        agents.append(agent)
        return agent

    yield build
    for agent in agents:
        await agent.close()


@pytest.fixture
def make_signer() -> type[FakeSigner]:
    return FakeSigner
