"""
Exception taxonomy shared by the RGB wallet components.
"""

from __future__ import annotations

from rgbcore.constants import ALLOCATIONS_ALREADY_AVAILABLE


class RgbError(Exception):
    """Base class for all wallet errors surfaced to callers."""

    pass


class InvalidCredentials(RgbError):
    """Required identity or signing fields are missing. Raised before any request."""

    pass


class NodeServiceError(RgbError):
    """
    Non-success response (or transport failure) from the node service.

    Attributes:
        operation: Node operation name (e.g. "sendbegin")
        status: HTTP status code, or None when no response was received
        body: Response body or transport error description
    """

    def __init__(self, operation: str, status: int | None, body: str):
        self.operation = operation
        self.status = status
        self.body = body
        status_text = status if status is not None else "no response"
        super().__init__(f"{operation} failed ({status_text}): {body}")

    @property
    def allocations_already_available(self) -> bool:
        return ALLOCATIONS_ALREADY_AVAILABLE in self.body


class SigningError(RgbError):
    """The signing agent could not produce a signed PSBT."""

    pass


class InvalidInvoice(RgbError):
    """Invoice could not be decoded, or is expired / for another network."""

    pass


class ProtectionError(RgbError):
    """Mnemonic unprotection failed and the value is not a plaintext mnemonic."""

    pass
