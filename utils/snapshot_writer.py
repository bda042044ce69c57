import json
from pathlib import Path
from typing import Iterator, Optional, Union

from config.settings import SNAPSHOT_FILE
from models.types import ClassifyResult, Thresholds

PATH = Path(SNAPSHOT_FILE)


def snapshot_row(result: ClassifyResult, thresholds: Thresholds, config_hash: Optional[str] = None) -> dict:
    """One replayable JSONL record: features plus what the live run decided."""
    signal = result.signal
    return {
        "symbol": result.features.symbol,
        "barTime": result.features.bar_time,
        "category": signal.category.value if signal else None,
        "thresholds": thresholds.to_dict(),
        "configHash": config_hash,
        "features": result.features.to_dict(),
        "gateSnapshot": result.gate_snapshot,
        "confirm15": result.confirm15.to_dict(),
    }


def write_snapshot(snapshot: dict, path: Union[str, Path, None] = None):
    p = Path(path) if path else PATH
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("a", encoding="utf-8") as f:
        f.write(json.dumps(snapshot) + "\n")


def read_snapshots(path: Union[str, Path, None] = None) -> Iterator[dict]:
    p = Path(path) if path else PATH
    with p.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                yield json.loads(line)
