"""
RGB Wallet CLI - drive a watch-only RGB node with an external signing agent.
"""

from __future__ import annotations

import asyncio
import shlex
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from loguru import logger
from pydantic import BaseModel, ValidationError

from rgbcore.constants import DEFAULT_BACKUP_PASSWORD
from rgbcore.errors import InvalidCredentials, RgbError
from rgbcore.models import NetworkType, WalletCredentials
from rgbcore.protection import CredentialProtector, load_mnemonic_file, save_mnemonic_file
from rgbwallet.config import RgbWalletConfig, SignerType
from rgbwallet.service import OperationResult, RgbWalletService

T = TypeVar("T")

app = typer.Typer(
    name="rgb-wallet",
    help="RGB wallet client for a watch-only node service",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan> | {message}"
        ),
    )


@dataclass
class CliContext:
    config: RgbWalletConfig
    xpub_vanilla: str
    xpub_colored: str
    master_fingerprint: str

    def credentials(self, with_mnemonic: bool = False) -> WalletCredentials:
        mnemonic = None
        if with_mnemonic:
            if self.config.mnemonic_file is None:
                raise InvalidCredentials(
                    "Mnemonic required. Use --mnemonic-file or RGB_MNEMONIC_FILE"
                )
            protector = CredentialProtector.from_key_file(
                self.config.protection_key_file, create=False
            )
            mnemonic = load_mnemonic_file(self.config.mnemonic_file, protector)
        return WalletCredentials(
            xpub_vanilla=self.xpub_vanilla,
            xpub_colored=self.xpub_colored,
            master_fingerprint=self.master_fingerprint,
            mnemonic=mnemonic,
            node_endpoint=self.config.node_url,
            network=self.config.network,
        )


def _credentials(ctx: typer.Context, with_mnemonic: bool = False) -> WalletCredentials:
    cli: CliContext = ctx.obj
    try:
        return cli.credentials(with_mnemonic)
    except (RgbError, OSError) as e:
        logger.error(str(e))
        raise typer.Exit(1)


def _run(ctx: typer.Context, action: Callable[[RgbWalletService], Awaitable[T]]) -> T:
    """Run an async action against a service built from the CLI context."""
    cli: CliContext = ctx.obj

    async def runner() -> T:
        service = RgbWalletService.from_config(cli.config)
        try:
            return await action(service)
        finally:
            await service.dispose()

    try:
        return asyncio.run(runner())
    except (RgbError, ValueError) as e:
        logger.error(str(e))
        raise typer.Exit(1)


def _echo(value: Any) -> None:
    if isinstance(value, BaseModel):
        typer.echo(value.model_dump_json(indent=2))
    elif isinstance(value, list):
        for item in value:
            _echo(item)
    else:
        typer.echo(value)


def _echo_sent(result: OperationResult) -> None:
    if not result.success:
        logger.error(result.error)
        raise typer.Exit(1)
    typer.echo(f"txid: {result.data['txid']}")
    if result.data.get("batch_transfer_idx") is not None:
        typer.echo(f"batch transfer: {result.data['batch_transfer_idx']}")


@app.callback()
def main_callback(
    ctx: typer.Context,
    node_url: Annotated[
        str, typer.Option("--node-url", envvar="RGB_NODE_URL", help="RGB node service URL")
    ] = "http://127.0.0.1:8000",
    network: Annotated[
        NetworkType, typer.Option(envvar="RGB_NETWORK", case_sensitive=False)
    ] = NetworkType.MAINNET,
    xpub_vanilla: Annotated[str, typer.Option("--xpub-van", envvar="RGB_XPUB_VAN")] = "",
    xpub_colored: Annotated[str, typer.Option("--xpub-col", envvar="RGB_XPUB_COL")] = "",
    master_fingerprint: Annotated[
        str, typer.Option("--fingerprint", envvar="RGB_MASTER_FINGERPRINT")
    ] = "",
    mnemonic_file: Annotated[
        Path | None,
        typer.Option(
            "--mnemonic-file", "-f", envvar="RGB_MNEMONIC_FILE", help="Protected mnemonic file"
        ),
    ] = None,
    protection_key_file: Annotated[
        Path | None, typer.Option("--key-file", envvar="RGB_PROTECTION_KEY_FILE")
    ] = None,
    signer_url: Annotated[
        str | None, typer.Option("--signer-url", envvar="RGB_SIGNER_URL")
    ] = None,
    signer_command: Annotated[
        str | None,
        typer.Option("--signer-command", envvar="RGB_SIGNER_COMMAND", help="Local signer program"),
    ] = None,
    timeout: Annotated[float, typer.Option("--timeout", help="Node call timeout (s)")] = 60.0,
    log_level: Annotated[str, typer.Option("--log-level", "-l")] = "INFO",
) -> None:
    """Common wallet options."""
    setup_logging(log_level)

    settings: dict[str, Any] = {
        "node_url": node_url,
        "network": network,
        "request_timeout_sec": timeout,
        "mnemonic_file": mnemonic_file,
    }
    if protection_key_file is not None:
        settings["protection_key_file"] = protection_key_file
    if signer_command:
        settings["signer_type"] = SignerType.SUBPROCESS
        settings["signer_command"] = shlex.split(signer_command)
    else:
        settings["signer_url"] = signer_url

    try:
        config = RgbWalletConfig(**settings)
    except ValidationError as e:
        raise typer.BadParameter(str(e))

    ctx.obj = CliContext(
        config=config,
        xpub_vanilla=xpub_vanilla,
        xpub_colored=xpub_colored,
        master_fingerprint=master_fingerprint,
    )


@app.command("generate-keys")
def generate_keys(
    ctx: typer.Context,
    save: Annotated[
        bool, typer.Option("--save", "-s", help="Store the mnemonic, protected, at --mnemonic-file")
    ] = False,
) -> None:
    """Ask the node to generate a new wallet key set."""
    cli: CliContext = ctx.obj
    keys = _run(ctx, lambda service: service.client.generate_keys())

    typer.echo(f"xpub (vanilla):     {keys.account_xpub_vanilla}")
    typer.echo(f"xpub (colored):     {keys.account_xpub_colored}")
    typer.echo(f"master fingerprint: {keys.master_fingerprint}")

    if save:
        if cli.config.mnemonic_file is None:
            logger.error("--save requires --mnemonic-file")
            raise typer.Exit(1)
        try:
            protector = CredentialProtector.from_key_file(cli.config.protection_key_file)
            save_mnemonic_file(cli.config.mnemonic_file, keys.mnemonic, protector)
        except (RgbError, OSError) as e:
            logger.error(f"Could not save mnemonic: {e}")
            raise typer.Exit(1)
        typer.echo(f"\nMnemonic saved (protected) to: {cli.config.mnemonic_file}")
    else:
        typer.echo("\n" + "=" * 80)
        typer.echo("GENERATED MNEMONIC - WRITE THIS DOWN AND KEEP IT SAFE!")
        typer.echo("=" * 80)
        typer.echo(f"\n{keys.mnemonic}\n")
        typer.echo("=" * 80)


@app.command()
def register(ctx: typer.Context) -> None:
    """Register the wallet's xpubs with the node service."""
    credentials = _credentials(ctx)
    result = _run(ctx, lambda service: service.init_wallet(credentials))
    if not result.success:
        logger.error(result.error)
        raise typer.Exit(1)
    _echo(result.data)


@app.command()
def address(ctx: typer.Context) -> None:
    """Show a new receiving address."""
    credentials = _credentials(ctx)
    _echo(_run(ctx, lambda service: service.client.get_address(credentials)))


@app.command()
def balance(ctx: typer.Context) -> None:
    """Show BTC and asset balances."""
    credentials = _credentials(ctx)
    result = _run(ctx, lambda service: service.get_balances(credentials))
    if not result.success:
        logger.error(result.error)
        raise typer.Exit(1)

    view = result.data
    for bucket, info in (("vanilla", view.btc.vanilla), ("colored", view.btc.colored)):
        typer.echo(
            f"BTC {bucket:<8} settled {info.settled_display:>16}  "
            f"future {info.future_display:>16}  spendable {info.spendable_display:>16}"
        )
    for asset in view.assets:
        typer.echo(
            f"{asset.ticker or asset.asset_id:<12} settled {asset.balance.settled_display:>16}  "
            f"future {asset.balance.future_display:>16}  "
            f"spendable {asset.balance.spendable_display:>16}"
        )


@app.command()
def unspents(ctx: typer.Context) -> None:
    """List unspent outputs and their allocations."""
    credentials = _credentials(ctx)
    _echo(_run(ctx, lambda service: service.client.list_unspents(credentials)))


@app.command()
def assets(ctx: typer.Context) -> None:
    """List RGB assets known to the wallet."""
    credentials = _credentials(ctx)
    _echo(_run(ctx, lambda service: service.client.list_assets(credentials)))


@app.command("asset-balance")
def asset_balance(ctx: typer.Context, asset_id: str) -> None:
    """Show the balance of one asset."""
    credentials = _credentials(ctx)
    _echo(_run(ctx, lambda service: service.client.get_asset_balance(credentials, asset_id)))


@app.command()
def issue(
    ctx: typer.Context,
    ticker: Annotated[str, typer.Option(help="Asset ticker")],
    name: Annotated[str, typer.Option(help="Asset name")],
    amount: Annotated[list[int], typer.Option("--amount", "-a", help="Issued amount (repeatable)")],
    precision: Annotated[int, typer.Option(min=0, max=18)] = 0,
) -> None:
    """Issue a new NIA asset."""
    credentials = _credentials(ctx)
    result = _run(
        ctx, lambda service: service.issue_asset_nia(credentials, ticker, name, amount, precision)
    )
    if not result.success:
        logger.error(result.error)
        raise typer.Exit(1)
    _echo(result.data)


@app.command()
def receive(
    ctx: typer.Context,
    asset_id: Annotated[str | None, typer.Option("--asset-id")] = None,
    amount: Annotated[int | None, typer.Option("--amount", min=1)] = None,
    expiry: Annotated[
        int | None, typer.Option("--expiry", help="Expiration timestamp (epoch seconds)")
    ] = None,
    witness: Annotated[
        bool, typer.Option("--witness", help="Witness receive instead of blinded UTXO")
    ] = False,
) -> None:
    """Create an invoice to receive assets."""
    credentials = _credentials(ctx)

    def create(service: RgbWalletService) -> Awaitable[Any]:
        if witness:
            return service.client.witness_receive(credentials, asset_id, amount, expiry)
        return service.client.blind_receive(credentials, asset_id, amount, expiry)

    _echo(_run(ctx, create))


@app.command("decode-invoice")
def decode_invoice(ctx: typer.Context, invoice: str) -> None:
    """Decode an RGB invoice and check it against the wallet network."""
    network = ctx.obj.config.network
    _echo(_run(ctx, lambda service: service.orchestrator.codec.decode_for_send(invoice, network)))


@app.command()
def transfers(
    ctx: typer.Context,
    asset_id: Annotated[str | None, typer.Option("--asset-id")] = None,
) -> None:
    """List transfers, optionally for one asset."""
    credentials = _credentials(ctx)
    _echo(_run(ctx, lambda service: service.client.list_transfers(credentials, asset_id)))


@app.command("fail-transfers")
def fail_transfers(
    ctx: typer.Context,
    all_assets: Annotated[
        bool, typer.Option("--all", help="Also fail transfers that name an asset")
    ] = False,
) -> None:
    """Mark stale pending transfers as failed."""
    credentials = _credentials(ctx)
    _run(ctx, lambda service: service.client.fail_transfers(credentials, not all_assets))
    typer.echo("Pending transfers failed")


@app.command("create-utxos")
def create_utxos(
    ctx: typer.Context,
    num: Annotated[int | None, typer.Option(min=1)] = None,
    size: Annotated[int | None, typer.Option(min=1, help="Satoshis per UTXO")] = None,
) -> None:
    """Create colorable UTXOs (begin, sign, end)."""
    credentials = _credentials(ctx, with_mnemonic=True)
    result = _run(ctx, lambda service: service.create_utxos(credentials, num, size))
    if not result.success:
        logger.error(result.error)
        raise typer.Exit(1)
    typer.echo(f"UTXOs created: {result.data['utxos_created']}")


@app.command("send-btc")
def send_btc(
    ctx: typer.Context,
    destination: str,
    amount: int,
    fee_rate: Annotated[int | None, typer.Option("--fee-rate", min=1)] = None,
) -> None:
    """Send bitcoin to an address (begin, sign, end)."""
    credentials = _credentials(ctx, with_mnemonic=True)
    _echo_sent(
        _run(ctx, lambda service: service.send_btc(credentials, destination, amount, fee_rate))
    )


@app.command()
def send(
    ctx: typer.Context,
    invoice: str,
    amount: Annotated[int | None, typer.Option("--amount", min=1)] = None,
    asset_id: Annotated[str | None, typer.Option("--asset-id")] = None,
    fee_rate: Annotated[int | None, typer.Option("--fee-rate", min=1)] = None,
) -> None:
    """Send an RGB asset to an invoice (begin, sign, end)."""
    credentials = _credentials(ctx, with_mnemonic=True)
    _echo_sent(
        _run(
            ctx,
            lambda service: service.send_rgb(
                credentials, invoice, amount=amount, asset_id=asset_id, fee_rate=fee_rate
            ),
        )
    )


@app.command()
def backup(
    ctx: typer.Context,
    password: Annotated[
        str, typer.Option("--password", envvar="RGB_BACKUP_PASSWORD", help="Backup password")
    ] = DEFAULT_BACKUP_PASSWORD,
) -> None:
    """Ask the node to produce an encrypted wallet backup."""
    credentials = _credentials(ctx)
    _echo(_run(ctx, lambda service: service.client.backup(credentials, password)))


@app.command("protect-mnemonic")
def protect_mnemonic(ctx: typer.Context) -> None:
    """Rewrite a plaintext mnemonic file in protected form."""
    config: RgbWalletConfig = ctx.obj.config
    if config.mnemonic_file is None:
        logger.error("Mnemonic file required. Use --mnemonic-file or RGB_MNEMONIC_FILE")
        raise typer.Exit(1)

    try:
        protector = CredentialProtector.from_key_file(config.protection_key_file)
        load_mnemonic_file(config.mnemonic_file, protector, migrate=True)
    except (RgbError, OSError) as e:
        logger.error(str(e))
        raise typer.Exit(1)
    typer.echo(f"Mnemonic at {config.mnemonic_file} is protected")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
