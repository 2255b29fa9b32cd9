from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Dict, Optional

_METRICS_PATH = Path("data/metrics.json")


def write_metrics(data: Dict[str, Any], path: Optional[Path] = None) -> None:
    path = path or _METRICS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)  # atomic replace


def read_metrics(path: Optional[Path] = None) -> Dict[str, Any]:
    path = path or _METRICS_PATH
    if not path.exists():
        return {"running": False, "message": "metrics not yet available"}
    return json.loads(path.read_text(encoding="utf-8"))
