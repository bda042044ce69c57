from typing import List, Optional

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.market_health import MarketHealth
from core.replay import ReplaySummary
from models.types import Category, MarketContext, Signal

CATEGORY_STYLES = {
    Category.BEST_ENTRY: "bold green",
    Category.READY_TO_BUY: "green",
    Category.EARLY_READY: "bold yellow",
    Category.WATCH: "dim white",
}


def _fmt(value: Optional[float], digits: int = 2, suffix: str = "") -> str:
    if value is None:
        return "-"
    return f"{value:.{digits}f}{suffix}"


def _price(value: Optional[float]) -> str:
    if value is None:
        return "-"
    # Sub-dollar coins need more precision
    return f"{value:.6g}" if value < 1 else f"{value:.4f}"


def render_signals_table(signals: List[Signal], title: str = "Signals") -> Table:
    table = Table(title=title)
    table.add_column("Symbol", style="cyan")
    table.add_column("Category", justify="center")
    table.add_column("Price", justify="right")
    table.add_column("ΔVWAP", justify="right")
    table.add_column("RSI", justify="right")
    table.add_column("Vol x", justify="right")
    table.add_column("ATR%", justify="right")
    table.add_column("Stop", justify="right")
    table.add_column("Target", justify="right")
    table.add_column("R:R", justify="right")
    table.add_column("Gate", justify="right")
    table.add_column("First Fail / BTC", style="dim")

    ordered = sorted(signals, key=lambda s: (-s.category.rank, -s.gate_score, s.symbol))
    for s in ordered:
        style = CATEGORY_STYLES.get(s.category, "white")
        cat = Text(s.category.value, style=style)
        if s.would_be_category:
            cat.append(f" ({s.would_be_category.value})", style="red")

        note = s.first_failed_gate or ""
        if s.btc_gate:
            note = f"{note} [{s.btc_gate.value}]".strip()
        elif s.blocked_by_btc:
            note = f"{note} [BTC_BLOCK]".strip()

        table.add_row(
            s.symbol,
            cat,
            _price(s.price),
            _fmt(s.delta_vwap_pct, suffix="%"),
            _fmt(s.rsi9, 1),
            _fmt(s.vol_spike),
            _fmt(s.atr_pct),
            _price(s.stop),
            _price(s.target),
            _fmt(s.rr),
            f"{s.gate_score}%",
            note,
        )
    return table


def render_market_panel(market: Optional[MarketContext], health: Optional[MarketHealth] = None) -> Panel:
    items = []
    if market is None:
        items.append("[red]Reference market: unavailable[/]")
    else:
        if market.reference_bullish:
            trend = "[green]BULL[/]"
        elif market.reference_bearish:
            trend = "[red]BEAR[/]"
        else:
            trend = "[yellow]NEUTRAL[/]"
        items.append(f"[cyan]{market.reference_symbol} 15m:[/] {trend}")
        items.append(f"[cyan]ΔVWAP:[/] {_fmt(market.delta_vwap_pct, suffix='%')}")
        items.append(f"[cyan]RSI9:[/] {_fmt(market.rsi9, 1)}")

    if health is not None:
        regime_style = {"ACTIVE": "green", "WARMING": "yellow"}.get(health.regime, "red")
        items.append(f"[magenta]Readiness:[/] {health.readiness} [{regime_style}]{health.regime}[/]")
        if health.blocking_gate:
            items.append(f"[red]Blocking:[/] {health.blocking_gate}")

    return Panel(Text.from_markup("  |  ".join(items)), title="Market", border_style="blue")


def render_replay_table(summary: ReplaySummary) -> Table:
    table = Table(title=f"Replay ({summary.total} snapshots, {summary.changed} changed)")
    table.add_column("Symbol", style="cyan")
    table.add_column("Bar", justify="right")
    table.add_column("Stored", justify="center")
    table.add_column("Replayed", justify="center")
    table.add_column("READY first fail", style="dim")

    for r in summary.results:
        if not r.changed:
            continue
        new = r.category.value if r.category else "NONE"
        table.add_row(
            r.symbol,
            str(r.bar_time or "-"),
            r.stored_category or "NONE",
            Text(new, style=CATEGORY_STYLES.get(r.category, "red")),
            r.debug["ready"].first_failed_gate or "",
        )

    table.caption = "  ".join(f"{k}={v}" for k, v in sorted(summary.categories.items()))
    return table
