import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests
from rich.console import Console

import main
from config import settings
from engine_fixtures import confirmed_series_15m, sweep_series_5m


def _fake_client():
    client = MagicMock()

    def fetch(symbol, interval, limit=300):
        if interval == "15m":
            return confirmed_series_15m(symbol=symbol)
        if symbol == "BADUSDT":
            raise requests.ConnectionError("down")
        return sweep_series_5m(symbol=symbol)

    client.fetch_klines.side_effect = fetch
    return client


class TestCli(unittest.TestCase):
    def setUp(self):
        self.out = io.StringIO()
        self.tmp = tempfile.TemporaryDirectory()
        self.snapshots = str(Path(self.tmp.name) / "snap.jsonl")
        self.patches = [
            patch.object(main, "console", Console(file=self.out, width=250)),
            patch.object(main, "BinanceRestClient", return_value=_fake_client()),
        ]
        for p in self.patches:
            p.start()

    def tearDown(self):
        for p in self.patches:
            p.stop()
        self.tmp.cleanup()

    def test_scan_writes_snapshots(self):
        code = main.main(["scan", "ETHUSDT", "BADUSDT", "--write-snapshots", "--snapshot-file", self.snapshots])
        self.assertEqual(code, 0)
        output = self.out.getvalue()
        self.assertIn("Market", output)
        self.assertIn("Signals (BALANCED)", output)

        lines = Path(self.snapshots).read_text(encoding="utf-8").splitlines()
        self.assertEqual(len(lines), 1)
        self.assertEqual(json.loads(lines[0])["symbol"], "ETHUSDT")

        # Same snapshots, same config: nothing changes on replay
        self.out.seek(0)
        self.out.truncate(0)
        self.assertEqual(main.main(["replay", "--snapshot-file", self.snapshots]), 0)
        self.assertIn("Replay (1 snapshots, 0 changed)", self.out.getvalue())

    def test_replay_reports_bad_overrides(self):
        main.main(["scan", "ETHUSDT", "--write-snapshots", "--snapshot-file", self.snapshots])
        self.out.seek(0)
        self.out.truncate(0)
        code = main.main([
            "replay", "--snapshot-file", self.snapshots, "--overrides", '{"NOT_A_KNOB": 1, "RSI_BEST_MIN": "x"}',
        ])
        self.assertEqual(code, 0)
        output = self.out.getvalue()
        self.assertIn("Unknown override keys", output)
        self.assertIn("RSI_BEST_MIN", output)

    def test_invalid_config_exits_2(self):
        with patch.object(settings, "RR_MIN_BEST", 1.0):
            code = main.main(["scan", "ETHUSDT"])
        self.assertEqual(code, 2)
        self.assertIn("Invalid configuration", self.out.getvalue())


if __name__ == "__main__":
    unittest.main()
