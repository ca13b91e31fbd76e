#!/usr/bin/env python3
"""
tradesim CLI

Command-line interface for running and inspecting the account simulator.

Usage:
    tradesim run [--config FILE] [--rounds N] [--interval SECONDS] [--feed KIND]
    tradesim status [--config FILE]
    tradesim mode [paper|real] [--config FILE]
    tradesim fund <asset> <amount> [--config FILE]
    tradesim reset-paper [--config FILE]
"""

import asyncio
from decimal import Decimal
from typing import Optional

import click

from .. import __version__
from ..config import TradeSimConfig, load_config
from ..engine import AccountEngine
from ..exceptions import ConfigurationError, TradingError
from ..feeds import build_feed
from ..logger import configure_logging, get_logger
from ..runner import TickRunner
from ..storage import JsonFileSnapshotStore


def _load(config_path: Optional[str]) -> TradeSimConfig:
    try:
        return load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(f"Invalid configuration: {e}")


def _engine(config: TradeSimConfig) -> AccountEngine:
    return AccountEngine(config, store=JsonFileSnapshotStore(config.engine.snapshot_path))


def _fmt(value: Decimal, places: int = 8) -> str:
    text = f"{value:,.{places}f}".rstrip("0").rstrip(".")
    return text or "0"


config_option = click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.toml (default: $TRADESIM_CONFIG or ./config.toml)",
)


@click.group()
@click.version_option(version=__version__, prog_name="tradesim")
def cli():
    """tradesim - trading account simulator

    Paper and real accounts with spot orders, leveraged futures, a liquidity
    pool, lending, staking and market-maker bots, driven by a price feed.
    """
    pass


@cli.command("run")
@config_option
@click.option("--rounds", "-n", type=int, default=None, help="Stop after N polling rounds")
@click.option("--interval", "-i", type=float, default=None, help="Seconds between rounds")
@click.option(
    "--feed", "-f",
    "feed_kind",
    type=click.Choice(["simulated", "http", "static"]),
    default=None,
    help="Override [feed] kind",
)
def run_cmd(config_path: Optional[str], rounds: Optional[int], interval: Optional[float], feed_kind: Optional[str]):
    """Poll the price feed and tick the active account.

    Examples:

        tradesim run --rounds 10 --interval 2

        tradesim run --feed http
    """
    config = _load(config_path)
    if feed_kind:
        config.feed.kind = feed_kind
    configure_logging(log_level=config.engine.log_level)
    logger = get_logger("tradesim.cli")

    engine = _engine(config)
    engine.subscribe(lambda event: logger.info(f"{event.kind.value} {event.ref_id} {event.to_dict()['data']}"))
    runner = TickRunner(
        engine,
        build_feed(config.feed),
        config.engine.pairs,
        interval if interval is not None else config.engine.tick_interval,
    )
    try:
        asyncio.run(runner.run(max_rounds=rounds))
    except KeyboardInterrupt:
        click.echo("Interrupted")
    _print_status(engine)


@cli.command("status")
@config_option
def status_cmd(config_path: Optional[str]):
    """Show balances, positions and PnL of the active account."""
    _print_status(_engine(_load(config_path)))


def _print_status(engine: AccountEngine) -> None:
    account = engine.active_account
    click.echo()
    click.echo(click.style(f"{engine.active_mode.value.upper()} account", fg="green", bold=True))
    click.echo()

    click.echo("Balances (available / total):")
    for asset, total in engine.balances().items():
        if total == 0:
            continue
        click.echo(f"  {asset.value:<9} {_fmt(engine.available(asset)):>22} / {_fmt(total)}")

    if account.open_orders:
        click.echo()
        click.echo("Open orders:")
        for order in account.open_orders.values():
            owner = f" [bot {order.bot_id}]" if order.bot_id else ""
            click.echo(f"  {order.id}  {order.side.value:<4} {_fmt(order.amount)} {order.pair} @ {_fmt(order.price, 2)}{owner}")

    if account.positions:
        click.echo()
        click.echo("Positions:")
        for p in account.positions.values():
            click.echo(
                f"  {p.id}  {p.side.value:<5} {_fmt(p.size)} {p.pair} x{_fmt(p.leverage)} "
                f"entry {_fmt(p.entry_price, 2)} liq {_fmt(p.liquidation_price, 2)} uPnL {_fmt(p.unrealized_pnl, 2)}"
            )

    if account.lending.borrowed:
        click.echo()
        band = engine.health_band()
        click.echo(f"Health factor: {_fmt(engine.health_factor(), 4)} ({band.value if band else 'n/a'})")

    valuation = engine.valuation_report()
    pnl = engine.pnl()
    click.echo()
    click.echo(f"Net worth: {_fmt(valuation.net_worth, 2)} USDT")
    color = "green" if pnl.value >= 0 else "red"
    click.echo(click.style(f"PnL:       {_fmt(pnl.value, 2)} USDT ({_fmt(pnl.percentage, 2)}%)", fg=color))
    if valuation.missing_prices:
        missing = ", ".join(sorted(a.value for a in valuation.missing_prices))
        click.echo(click.style(f"Unpriced:  {missing}", fg="yellow"))


@cli.command("mode")
@config_option
@click.argument("mode", type=click.Choice(["paper", "real"]), required=False)
def mode_cmd(config_path: Optional[str], mode: Optional[str]):
    """Show or switch the active account."""
    engine = _engine(_load(config_path))
    if mode is not None:
        engine.set_mode(mode)
    click.echo(f"Active account: {engine.active_mode.value}")


@cli.command("fund")
@config_option
@click.argument("asset")
@click.argument("amount")
def fund_cmd(config_path: Optional[str], asset: str, amount: str):
    """Credit AMOUNT of ASSET to the active account (faucet)."""
    engine = _engine(_load(config_path))
    try:
        balance = engine.fund(asset, amount)
    except TradingError as e:
        raise click.ClickException(str(e))
    click.echo(f"{asset.upper()} balance: {_fmt(balance)}")


@cli.command("reset-paper")
@config_option
@click.confirmation_option(prompt="Discard all paper-account state?")
def reset_paper_cmd(config_path: Optional[str]):
    """Reset the paper account to its faucet balances."""
    engine = _engine(_load(config_path))
    engine.reset_paper_account()
    click.echo(click.style("Paper account reset", fg="green"))


if __name__ == "__main__":
    cli()
