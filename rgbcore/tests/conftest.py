"""
Pytest configuration and fixtures for rgbcore tests.
"""

from __future__ import annotations

import pytest

from rgbcore.models import NetworkType, WalletCredentials
from rgbcore.protection import CredentialProtector


@pytest.fixture
def sample_mnemonic() -> str:
    """Test mnemonic (BIP39 test vector, not for production use!)."""
    return (
        "abandon abandon abandon abandon abandon abandon "
        "abandon abandon abandon abandon abandon about"
    )


@pytest.fixture
def master_key() -> bytes:
    return bytes(range(32))


@pytest.fixture
def protector(master_key: bytes) -> CredentialProtector:
    return CredentialProtector(master_key)


@pytest.fixture
def credentials(sample_mnemonic: str) -> WalletCredentials:
    return WalletCredentials(
        xpub_vanilla="tpubVanilla",
        xpub_colored="tpubColored",
        master_fingerprint="a1b2c3d4",
        mnemonic=sample_mnemonic,
        node_endpoint="http://node.test",
        network=NetworkType.REGTEST,
    )
