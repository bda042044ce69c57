import io

from rich.console import Console

from core.config import thresholds_for_preset
from core.engine import SignalEngine
from core.market_health import MarketHealth
from core.replay import replay_many
from engine_fixtures import (
    BEAR_MARKET,
    BULL_MARKET,
    StubFeed,
    confirmed_series_15m,
    ready_features,
    sweep_config,
    sweep_series_5m,
)
from ui.console import render_market_panel, render_replay_table, render_signals_table


def _render(renderable) -> str:
    console = Console(file=io.StringIO(), width=250)
    console.print(renderable)
    return console.file.getvalue()


def test_signals_table():
    thresholds = thresholds_for_preset("BALANCED")
    engine = SignalEngine(config=sweep_config(), feed=StubFeed())
    best = engine.classify("ETHUSDT", sweep_series_5m(), confirmed_series_15m(), thresholds, BULL_MARKET)

    bear_engine = SignalEngine(
        config=sweep_config(best_btc_required=False, bear_gate_rsi_min=90, bear_gate_hold_candles=3),
        feed=StubFeed(),
    )
    demoted = bear_engine.classify(
        "SOLUSDT", sweep_series_5m(symbol="SOLUSDT"), confirmed_series_15m(symbol="SOLUSDT"), thresholds, BEAR_MARKET
    )

    output = _render(render_signals_table([demoted, best], title="Signals (BALANCED)"))
    assert "Signals (BALANCED)" in output
    assert "ETHUSDT" in output
    assert "BEST_ENTRY" in output
    assert "FAIL_BEAR" in output
    # Highest tier first
    assert output.index("ETHUSDT") < output.index("SOLUSDT")


def test_empty_signals_table():
    output = _render(render_signals_table([]))
    assert "Signals" in output


def test_market_panel():
    health = MarketHealth(
        volatility=90, volume=40, trend=80, vwap=70, readiness=70,
        regime="ACTIVE", blocking_gate="Volume", scan_count=1,
    )
    output = _render(render_market_panel(BULL_MARKET, health))
    assert "BTCUSDT 15m" in output
    assert "BULL" in output
    assert "Readiness" in output
    assert "Blocking" in output

    assert "unavailable" in _render(render_market_panel(None))


def test_replay_table():
    thresholds = thresholds_for_preset("BALANCED")
    summary = replay_many([ready_features()], sweep_config(), thresholds, {"RSI_READY_MIN": 59})
    output = _render(render_replay_table(summary))
    assert "Replay (1 snapshots, 1 changed)" in output
    assert "ETHUSDT" in output
