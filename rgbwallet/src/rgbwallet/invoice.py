"""
RGB invoice decoding and validation.
"""

from __future__ import annotations

import time

from loguru import logger

from rgbcore.errors import InvalidInvoice, NodeServiceError
from rgbcore.models import Invoice, NetworkType
from rgbwallet.client import NodeServiceClient


class InvoiceCodec:
    """Decodes invoice strings through the node service and checks them for sending."""

    def __init__(self, client: NodeServiceClient):
        self.client = client

    async def decode(self, invoice: str) -> Invoice:
        """
        Decode an invoice string.

        Decoding is a pure mapping; expiry and network are checked by
        validate().

        Raises:
            InvalidInvoice: If the node cannot parse the invoice or the
                decoded fields are malformed
        """
        if not invoice or not invoice.strip():
            raise InvalidInvoice("Empty invoice")

        try:
            data = await self.client.decode_rgb_invoice(invoice.strip())
        except NodeServiceError as e:
            raise InvalidInvoice(f"Could not decode invoice: {e.body}") from e

        try:
            return Invoice.from_node(data)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInvoice(f"Malformed decoded invoice: {e}") from e

    @staticmethod
    def validate(invoice: Invoice, network: NetworkType, now: float | None = None) -> Invoice:
        """
        Check that an invoice can be paid from a wallet on `network`.

        Raises:
            InvalidInvoice: If the invoice has expired or targets another network
        """
        current = time.time() if now is None else now
        if invoice.is_expired(current):
            raise InvalidInvoice(
                f"Invoice expired at {invoice.expiration_timestamp} (now {int(current)})"
            )
        if invoice.network != network:
            raise InvalidInvoice(
                f"Invoice is for {invoice.network.value}, wallet is on {network.value}"
            )
        return invoice

    async def decode_for_send(
        self, invoice: str, network: NetworkType, now: float | None = None
    ) -> Invoice:
        decoded = self.validate(await self.decode(invoice), network, now)
        logger.debug(f"Invoice for recipient {decoded.recipient_id} is valid on {network.value}")
        return decoded
