import argparse
import json
import sys
from typing import List

import requests
from rich.console import Console

from config.settings import (
    DEBUG_LOG_FILE,
    DEFAULT_PRESET,
    KLINE_LIMIT,
    NO_LOOKAHEAD_LOG,
    NO_LOOKAHEAD_LOG_BUDGET,
    REFERENCE_SYMBOL,
    SNAPSHOT_FILE,
    SYMBOLS,
    TIMEFRAME_5M,
    TIMEFRAME_15M,
    VWAP_DAY_FLIP_LOG_COOLDOWN_S,
)
from core.config import ConfigError, EngineConfig, thresholds_for_preset
from core.engine import SignalEngine
from core.lookahead import LookAheadViolation
from core.market_health import GateStats, market_health
from core.regime import compute_reference_market
from core.replay import replay_many
from data.binance_client import BinanceRestClient
from models.types import Signal
from ui.console import render_market_panel, render_replay_table, render_signals_table
from utils.log_sampler import BudgetLogSampler, CooldownLogSampler, RoutingLogSampler
from utils.logger import setup_logger
from utils.snapshot_writer import read_snapshots, snapshot_row, write_snapshot

# Keep a real stdout for Rich to use
console = Console(file=sys.__stdout__)

logger = setup_logger("scanner")
debug_logger = setup_logger("debug_scanner", log_file=DEBUG_LOG_FILE, level="DEBUG")


def build_sampler() -> RoutingLogSampler:
    routes = {"vwap_day_flip": CooldownLogSampler(debug_logger, VWAP_DAY_FLIP_LOG_COOLDOWN_S)}
    if NO_LOOKAHEAD_LOG:
        routes["no_lookahead"] = BudgetLogSampler(debug_logger, NO_LOOKAHEAD_LOG_BUDGET or None)
    return RoutingLogSampler(routes)


def cmd_scan(args) -> int:
    config = EngineConfig.from_settings().validate()
    thresholds = thresholds_for_preset(args.preset)
    client = BinanceRestClient()
    engine = SignalEngine(config=config, sampler=build_sampler())
    logger.info(f"Scan start preset={args.preset} configHash={config.config_hash()}")

    if args.symbols:
        symbols = [s.upper() for s in args.symbols]
    elif args.top:
        symbols = client.top_usdt_symbols(args.top)
    else:
        symbols = list(SYMBOLS)

    market = None
    try:
        ref15 = client.fetch_klines(REFERENCE_SYMBOL, TIMEFRAME_15M, args.limit)
        market = compute_reference_market(ref15, config, engine.feed, REFERENCE_SYMBOL)
    except requests.RequestException as e:
        logger.error(f"Failed to fetch reference market {REFERENCE_SYMBOL}: {e}")

    stats = GateStats()
    signals: List[Signal] = []
    for symbol in symbols:
        try:
            c5 = client.fetch_klines(symbol, TIMEFRAME_5M, args.limit)
            c15 = client.fetch_klines(symbol, TIMEFRAME_15M, args.limit)
        except requests.RequestException as e:
            logger.error(f"Failed to fetch klines for {symbol}: {e}")
            continue

        try:
            result = engine.classify_detailed(symbol, c5, c15, thresholds, market)
        except LookAheadViolation:
            logger.exception(f"Look-ahead violation for {symbol}, skipping")
            continue

        stats.record(result)
        if result is None:
            continue
        if result.signal:
            signals.append(result.signal)
        if args.write_snapshots:
            write_snapshot(snapshot_row(result, thresholds, config.config_hash()), args.snapshot_file)

    logger.info(f"Scan done: {len(signals)} signals from {stats.processed} symbols")
    console.print(render_market_panel(market, market_health([stats])))
    console.print(render_signals_table(signals, title=f"Signals ({args.preset})"))
    if args.json:
        console.print_json(json.dumps([s.to_dict() for s in signals]))
    return 0


def cmd_replay(args) -> int:
    config = EngineConfig.from_settings()
    thresholds = thresholds_for_preset(args.preset)
    overrides = json.loads(args.overrides) if args.overrides else None

    summary = replay_many(read_snapshots(args.snapshot_file), config, thresholds, overrides)
    if summary.report:
        if summary.report.unknown_override_keys:
            console.print(f"[yellow]Unknown override keys:[/] {', '.join(summary.report.unknown_override_keys)}")
        for key, err in summary.report.override_type_errors.items():
            console.print(f"[red]{key}:[/] {err}")
        for warning in summary.report.override_warnings:
            console.print(f"[yellow]Warning:[/] {warning}")
    console.print(render_replay_table(summary))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="VWAP long-signal scanner")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Fetch klines, classify and print signals")
    scan.add_argument("symbols", nargs="*", help="Symbols to scan (default: configured list)")
    scan.add_argument("--preset", default=DEFAULT_PRESET, help="CONSERVATIVE | BALANCED | AGGRESSIVE")
    scan.add_argument("--top", type=int, default=0, help="Scan the top N USDT pairs by quote volume")
    scan.add_argument("--limit", type=int, default=KLINE_LIMIT, help="Klines per request")
    scan.add_argument("--write-snapshots", action="store_true", help="Append feature snapshots for replay")
    scan.add_argument("--snapshot-file", default=SNAPSHOT_FILE)
    scan.add_argument("--json", action="store_true", help="Also print signals as JSON")
    scan.set_defaults(func=cmd_scan)

    replay = sub.add_parser("replay", help="Re-evaluate stored feature snapshots")
    replay.add_argument("--preset", default=DEFAULT_PRESET)
    replay.add_argument("--snapshot-file", default=SNAPSHOT_FILE)
    replay.add_argument("--overrides", help='JSON object, e.g. \'{"RSI_BEST_MIN": 57}\'')
    replay.set_defaults(func=cmd_replay)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        console.print(f"[red]Invalid configuration:[/] {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
