"""
At-rest protection for wallet mnemonics.

Mnemonics are sealed with a NaCl secret box whose key is derived from a
master protection key and a fixed purpose string. Values written before
protection existed are plaintext; unprotect() recognizes them and returns
them unchanged so they keep working until rewritten through protect().
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
from pathlib import Path

import libnacl
import libnacl.utils
from libnacl import secret
from loguru import logger

from rgbcore.constants import (
    MNEMONIC_MAX_WORDS,
    MNEMONIC_MIN_WORDS,
    MNEMONIC_PROTECTION_PURPOSE,
)
from rgbcore.errors import ProtectionError


def is_likely_plain_mnemonic(value: str) -> bool:
    """
    Check whether a value looks like an unprotected BIP39 phrase.

    BIP39 mnemonics are 12-24 whitespace-separated words made only of
    lowercase letters.
    """
    words = value.split()
    if not MNEMONIC_MIN_WORDS <= len(words) <= MNEMONIC_MAX_WORDS:
        return False
    return all(c.isalpha() and c.islower() for word in words for c in word)


def derive_purpose_key(master_key: bytes, purpose: str) -> bytes:
    """Derive the 32-byte secret box key for one protection scope."""
    return hmac.new(master_key, purpose.encode("utf-8"), hashlib.sha256).digest()


class CredentialProtector:
    """
    Protects and unprotects mnemonics for durable storage.

    Ciphertexts are base64url(nonce || secretbox). Protectors built from the
    same master key and purpose can read each other's output.
    """

    def __init__(self, master_key: bytes, purpose: str = MNEMONIC_PROTECTION_PURPOSE):
        if len(master_key) < libnacl.crypto_secretbox_KEYBYTES:
            raise ValueError(
                f"Master key must be at least {libnacl.crypto_secretbox_KEYBYTES} bytes"
            )
        self.purpose = purpose
        self._box = secret.SecretBox(derive_purpose_key(master_key, purpose))

    @classmethod
    def from_key_file(cls, path: Path, create: bool = True) -> CredentialProtector:
        """
        Load the master key from a file, generating it on first use.

        Args:
            path: Key file holding the hex-encoded master key
            create: Generate and store a new key if the file is missing

        Returns:
            CredentialProtector bound to the stored key
        """
        if not path.exists():
            if not create:
                raise ProtectionError(f"Protection key file not found: {path}")
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(libnacl.utils.salsa_key().hex())
            os.chmod(path, 0o600)
            logger.info(f"Generated new protection key at {path}")

        try:
            master_key = bytes.fromhex(path.read_text().strip())
        except ValueError as e:
            raise ProtectionError(f"Invalid protection key file {path}: {e}") from e
        return cls(master_key)

    def protect(self, mnemonic: str) -> str:
        """Seal a mnemonic. Empty input is returned unchanged."""
        if not mnemonic:
            return mnemonic
        sealed = self._box.encrypt(mnemonic.encode("utf-8"))
        return base64.urlsafe_b64encode(sealed).decode("ascii")

    def _open(self, protected_value: str) -> str:
        sealed = base64.urlsafe_b64decode(protected_value.encode("ascii"))
        return self._box.decrypt(sealed).decode("utf-8")

    def is_protected(self, value: str) -> bool:
        """True if value is a ciphertext this protector can open."""
        if not value:
            return False
        try:
            self._open(value)
        except (ValueError, binascii.Error):
            return False
        return True

    def unprotect(self, protected_value: str) -> str:
        """
        Open a protected mnemonic.

        Falls back to returning the value unchanged when it is a legacy
        plaintext mnemonic.

        Raises:
            ProtectionError: If the value is neither a valid ciphertext for
                this scope nor plaintext-mnemonic shaped
        """
        if not protected_value:
            return protected_value

        try:
            return self._open(protected_value)
        except (ValueError, binascii.Error) as e:
            if is_likely_plain_mnemonic(protected_value):
                logger.debug("Stored mnemonic is unprotected plaintext")
                return protected_value
            raise ProtectionError(f"Failed to unprotect mnemonic: {e}") from e


def save_mnemonic_file(path: Path, mnemonic: str, protector: CredentialProtector) -> None:
    """Write a mnemonic to disk, always protected, readable by owner only."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(protector.protect(mnemonic))
    os.chmod(path, 0o600)


def load_mnemonic_file(
    path: Path, protector: CredentialProtector, migrate: bool = True
) -> str:
    """
    Read a mnemonic file written by save_mnemonic_file (or a legacy plaintext one).

    Args:
        path: Mnemonic file
        protector: Protector for the file's scope
        migrate: Rewrite a legacy plaintext file in protected form

    Returns:
        The plaintext mnemonic
    """
    if not path.exists():
        raise ProtectionError(f"Mnemonic file not found: {path}")

    stored = path.read_text().strip()
    mnemonic = protector.unprotect(stored)

    if migrate and mnemonic and not protector.is_protected(stored):
        save_mnemonic_file(path, mnemonic, protector)
        logger.warning(f"Migrated plaintext mnemonic at {path} to protected storage")

    return mnemonic
