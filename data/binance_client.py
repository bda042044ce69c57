import time
from typing import Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config.settings import BINANCE_REST_URL, KLINE_LIMIT, MIN_QUOTE_VOLUME_USD
from models.types import Candle
from utils.logger import setup_logger

logger = setup_logger("BinanceClient")

# Leveraged / fiat-like tokens are never scanned
_EXCLUDED_SUFFIXES = ("UPUSDT", "DOWNUSDT", "BULLUSDT", "BEARUSDT")
_EXCLUDED_BASES = ("USDC", "FDUSD", "TUSD", "BUSD", "DAI", "USDP", "EUR")


class BinanceRestClient:
    """Spot REST access for klines and 24h tickers."""

    def __init__(self, base_url: str = BINANCE_REST_URL, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        if session is None:
            # Persistent session: retries on 5xx, pooled sockets for the per-symbol burst
            session = requests.Session()
            retries = Retry(total=3, backoff_factor=0.5, status_forcelist=[500, 502, 503, 504])
            adapter = HTTPAdapter(max_retries=retries, pool_connections=50, pool_maxsize=50)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session
        logger.info(f"BinanceRestClient created for {self.base_url}")

    def fetch_klines(
        self,
        symbol: str,
        interval: str,
        limit: int = KLINE_LIMIT,
        closed_only: bool = True,
        now_ms: Optional[int] = None,
    ) -> List[Candle]:
        """
        Klines oldest first. The still-forming candle is dropped unless
        closed_only is False. Raises requests errors to the caller.
        """
        params = {"symbol": symbol.upper(), "interval": interval, "limit": limit}
        resp = self.session.get(f"{self.base_url}/api/v3/klines", params=params, timeout=10)
        resp.raise_for_status()
        data = resp.json()

        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        candles = []
        for k in data:
            close_time = int(k[6])
            candle = Candle(
                symbol=symbol.upper(),
                timestamp=int(k[0]),
                open=float(k[1]),
                high=float(k[2]),
                low=float(k[3]),
                close=float(k[4]),
                volume=float(k[5]),
                close_time=close_time,
                closed=close_time < now_ms,
            )
            if closed_only and not candle.closed:
                continue
            candles.append(candle)
        return candles

    def top_usdt_symbols(self, limit: int = 30, min_quote_volume: float = MIN_QUOTE_VOLUME_USD) -> List[str]:
        """USDT pairs ranked by 24h quote volume."""
        resp = self.session.get(f"{self.base_url}/api/v3/ticker/24hr", timeout=10)
        resp.raise_for_status()

        ranked = []
        for t in resp.json():
            sym = t.get("symbol", "")
            if not sym.endswith("USDT") or sym.endswith(_EXCLUDED_SUFFIXES):
                continue
            if sym[:-4] in _EXCLUDED_BASES:
                continue
            try:
                qv = float(t.get("quoteVolume", 0))
            except (TypeError, ValueError):
                continue
            if qv >= min_quote_volume:
                ranked.append((qv, sym))
        ranked.sort(reverse=True)
        return [sym for _, sym in ranked[:limit]]

    def fetch_series(self, symbols: List[str], interval: str, limit: int = KLINE_LIMIT) -> Dict[str, List[Candle]]:
        """Klines for many symbols; a symbol that fails is logged and left out."""
        out: Dict[str, List[Candle]] = {}
        for symbol in symbols:
            try:
                out[symbol] = self.fetch_klines(symbol, interval, limit)
            except requests.RequestException as e:
                logger.error(f"Failed to fetch {interval} klines for {symbol}: {e}")
        return out
