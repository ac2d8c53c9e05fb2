"""
Balance and allocation reconciliation for display.

Amounts travel as unscaled integers. They are only scaled here, by the
asset's precision, when producing display strings.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from rgbcore.constants import BTC_PRECISION
from rgbcore.models import Asset, AssetBalance, BalanceInfo, BtcBalance, UnspentOutput


def format_amount(raw: int, precision: int | None) -> str:
    """
    Format a raw integer amount as raw / 10**precision.

    The result has exactly `precision` fractional digits. A missing or
    negative precision is a data error: the unscaled integer is returned.
    """
    if precision is None or isinstance(precision, bool) or precision < 0:
        logger.debug(f"Refusing to scale {raw} with precision {precision!r}")
        return str(raw)
    value = Decimal(raw).scaleb(-precision)
    return f"{value:.{precision}f}"


class BalanceView(BaseModel):
    """Display-ready settled/future/spendable triple."""

    settled: int
    future: int
    spendable: int
    precision: int | None
    settled_display: str
    future_display: str
    spendable_display: str

    @classmethod
    def build(cls, balance: BalanceInfo, precision: int | None) -> BalanceView:
        return cls(
            settled=balance.settled,
            future=balance.future,
            spendable=balance.spendable,
            precision=precision,
            settled_display=format_amount(balance.settled, precision),
            future_display=format_amount(balance.future, precision),
            spendable_display=format_amount(balance.spendable, precision),
        )


class AssetBalanceView(BaseModel):
    asset_id: str
    ticker: str = ""
    name: str = ""
    balance: BalanceView
    # Sum of allocation amounts seen in the wallet's UTXOs
    allocated_settled: int = 0
    allocated_total: int = 0


class BtcBalanceView(BaseModel):
    vanilla: BalanceView
    colored: BalanceView
    total: BalanceView


class WalletBalanceView(BaseModel):
    btc: BtcBalanceView
    assets: list[AssetBalanceView] = Field(default_factory=list)


class AllocationSummary(BaseModel):
    """Per-asset allocation totals across a set of unspent outputs."""

    settled: dict[str, int] = Field(default_factory=dict)
    total: dict[str, int] = Field(default_factory=dict)
    colorable_count: int = 0
    free_colorable_count: int = 0


class BalanceAggregator:
    """Merges node-reported balances and allocations into reportable views."""

    def btc_view(self, balance: BtcBalance) -> BtcBalanceView:
        # Totals add the buckets state by state; spendable stays node-reported
        total = BalanceInfo(
            settled=balance.vanilla.settled + balance.colored.settled,
            future=balance.vanilla.future + balance.colored.future,
            spendable=balance.vanilla.spendable + balance.colored.spendable,
        )
        return BtcBalanceView(
            vanilla=BalanceView.build(balance.vanilla, BTC_PRECISION),
            colored=BalanceView.build(balance.colored, BTC_PRECISION),
            total=BalanceView.build(total, BTC_PRECISION),
        )

    def summarize_allocations(self, unspents: Iterable[UnspentOutput]) -> AllocationSummary:
        settled: dict[str, int] = defaultdict(int)
        total: dict[str, int] = defaultdict(int)
        colorable = 0
        free = 0

        for utxo in unspents:
            if utxo.colorable:
                colorable += 1
                if utxo.is_free:
                    free += 1
            for allocation in utxo.allocations:
                total[allocation.asset_id] += allocation.amount
                if allocation.settled:
                    settled[allocation.asset_id] += allocation.amount

        return AllocationSummary(
            settled=dict(settled),
            total=dict(total),
            colorable_count=colorable,
            free_colorable_count=free,
        )

    def asset_view(
        self,
        asset: Asset,
        balance: AssetBalance,
        allocations: AllocationSummary | None = None,
    ) -> AssetBalanceView:
        return AssetBalanceView(
            asset_id=asset.asset_id,
            ticker=asset.ticker,
            name=asset.name,
            balance=BalanceView.build(balance, asset.precision),
            allocated_settled=allocations.settled.get(asset.asset_id, 0) if allocations else 0,
            allocated_total=allocations.total.get(asset.asset_id, 0) if allocations else 0,
        )

    def wallet_view(
        self,
        btc_balance: BtcBalance,
        assets: Iterable[Asset],
        asset_balances: Mapping[str, AssetBalance],
        unspents: Iterable[UnspentOutput] = (),
    ) -> WalletBalanceView:
        """
        Build the full wallet view.

        Assets without an entry in asset_balances are reported with zero
        balances rather than dropped.
        """
        allocations = self.summarize_allocations(unspents)
        views = [
            self.asset_view(asset, asset_balances.get(asset.asset_id, AssetBalance()), allocations)
            for asset in assets
        ]
        return WalletBalanceView(btc=self.btc_view(btc_balance), assets=views)


class PromptDisplay(BaseModel):
    ticker: str | None = None
    due: str | None = None


def prompt_display(details: Mapping[str, Any] | None) -> PromptDisplay | None:
    """
    Map payment-prompt details to the ticker and amount shown at checkout.

    Expects assetTicker, amountInAssetUnits and assetPrecision. Malformed
    details degrade to None so the caller falls back to the on-chain display.
    """
    if not details:
        return None

    try:
        display = PromptDisplay()
        ticker = details.get("assetTicker")
        if ticker:
            display.ticker = str(ticker)

        amount = int(details.get("amountInAssetUnits") or 0)
        precision = int(details.get("assetPrecision", 0))
        if amount > 0 and precision >= 0:
            display.due = format_amount(amount, precision)
        return display
    except (TypeError, ValueError, AttributeError) as e:
        logger.debug(f"Ignoring malformed payment prompt details: {e}")
        return None
