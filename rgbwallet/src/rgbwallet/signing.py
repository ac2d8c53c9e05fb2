"""
PSBT signing agents.

The signing agent is the custody boundary: it receives the unsigned PSBT
together with the full credential bundle (including the mnemonic) and
returns the signed PSBT. Implementations are interchangeable:

- HttpSigningAgent: remote signer reached over HTTP
- SubprocessSigningAgent: local signer program, JSON on stdin, PSBT on stdout
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any

import httpx
from loguru import logger

from rgbcore.constants import DEFAULT_SIGNER_TIMEOUT, WALLET_PATH_PREFIX
from rgbcore.errors import SigningError
from rgbcore.models import WalletCredentials
from rgbwallet.client import strip_quotes


def signing_request(psbt: str, credentials: WalletCredentials) -> dict[str, Any]:
    """Request body understood by the signing agents."""
    return {
        "mnemonic": credentials.mnemonic,
        "psbt": strip_quotes(psbt),
        "xpub_van": credentials.xpub_vanilla,
        "xpub_col": credentials.xpub_colored,
        "master_fingerprint": credentials.master_fingerprint,
    }


class SigningAgent(ABC):
    """
    Opaque signing capability: sign(psbt, credentials) -> signed psbt.

    Implementations must raise SigningError for any failure to produce a
    signed PSBT, and InvalidCredentials before doing any work when the
    mnemonic is missing.
    """

    @abstractmethod
    async def sign(self, psbt: str, credentials: WalletCredentials) -> str:
        """Sign a base64 PSBT, returning the signed base64 PSBT"""

    async def close(self) -> None:
        """Release agent resources"""
        pass


class HttpSigningAgent(SigningAgent):
    """
    Signing agent reached over HTTP.

    The signer must be a separate service from the node service: the
    mnemonic is only ever sent here.
    """

    def __init__(
        self,
        signer_url: str,
        timeout: float = DEFAULT_SIGNER_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.signer_url = signer_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.signer_url, timeout=timeout, transport=transport
        )

    async def sign(self, psbt: str, credentials: WalletCredentials) -> str:
        credentials.require_mnemonic()
        if not psbt:
            raise SigningError("Nothing to sign: empty PSBT")

        try:
            response = await self.client.post(
                f"{WALLET_PATH_PREFIX}/sign", json=signing_request(psbt, credentials)
            )
        except httpx.HTTPError as e:
            logger.error(f"Signer request failed: {e}")
            raise SigningError(f"Signer unreachable: {e}") from e

        if not response.is_success:
            logger.error(f"sign failed ({response.status_code}): {response.text}")
            raise SigningError(f"Signer returned {response.status_code}: {response.text}")

        signed = strip_quotes(response.text)
        if not signed:
            raise SigningError("Signer returned an empty PSBT")
        return signed

    async def close(self) -> None:
        await self.client.aclose()


class SubprocessSigningAgent(SigningAgent):
    """
    Signing agent run as a local program.

    The program receives the signing request as JSON on stdin and prints
    the signed PSBT (bare, quoted, or as {"signed_psbt": ...}) on stdout.
    A non-zero exit status is a signing failure; stderr becomes the message.
    """

    def __init__(self, command: list[str], timeout: float = DEFAULT_SIGNER_TIMEOUT):
        if not command:
            raise ValueError("Signer command must not be empty")
        self.command = command
        self.timeout = timeout

    async def sign(self, psbt: str, credentials: WalletCredentials) -> str:
        credentials.require_mnemonic()
        if not psbt:
            raise SigningError("Nothing to sign: empty PSBT")

        payload = json.dumps(signing_request(psbt, credentials)).encode("utf-8")
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SigningError(f"Could not start signer {self.command[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(payload), timeout=self.timeout
            )
        except TimeoutError as e:
            process.kill()
            await process.wait()
            raise SigningError(f"Signer timed out after {self.timeout}s") from e

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            logger.error(f"Signer exited with {process.returncode}: {message}")
            raise SigningError(message or f"Signer exited with {process.returncode}")

        return self._parse_output(stdout.decode("utf-8", errors="replace"))

    @staticmethod
    def _parse_output(output: str) -> str:
        text = output.strip()
        if text.startswith("{"):
            try:
                data = json.loads(text)
            except json.JSONDecodeError as e:
                raise SigningError(f"Signer printed invalid JSON: {e}") from e
            if not isinstance(data, dict):
                raise SigningError(f"Signer printed unexpected JSON: {text}")
            if data.get("error"):
                raise SigningError(str(data["error"]))
            text = data.get("signed_psbt") or data.get("SignedPsbt") or ""
            if not isinstance(text, str):
                raise SigningError(f"Signer returned a non-string PSBT: {text!r}")
        signed = strip_quotes(text)
        if not signed:
            raise SigningError("Signer returned an empty PSBT")
        return signed
