from __future__ import annotations

import json
import os
import platform
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import psutil


OPS_ENV_FLAG = "LEADX_OPS_JSON"


def ops_enabled(config_flag: bool = False) -> bool:
    """Ops records are written when the config flag or LEADX_OPS_JSON=1 is set."""
    return bool(config_flag) or os.environ.get(OPS_ENV_FLAG, "0") == "1"


class OpsLogger:
    """Append-only JSONL logger for operational records.

    - One JSON object per line (UTF-8)
    - Safe to share between workers (coarse lock)
    - Best-effort: never raises to caller
    """

    def __init__(self, file_path: Path, also_stdout: bool = False) -> None:
        self.file_path = Path(file_path)
        self.also_stdout = bool(also_stdout)
        self.records_written = 0
        self._lock = threading.Lock()
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            pass

    def emit(self, record: Dict[str, Any]) -> None:
        try:
            line = json.dumps(record, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            line = json.dumps({"leadx_ops": 1, "_serialization_error": True, "record_str": str(record)})
        try:
            with self._lock:
                with self.file_path.open("a", encoding="utf-8") as f:
                    f.write(line)
                    f.write("\n")
                self.records_written += 1
        except OSError:
            # Never propagate logging errors
            pass
        if self.also_stdout:
            print(line)


def resource_snapshot() -> Dict[str, Any]:
    """CPU/RSS of the current process plus host info for run summaries."""
    cpu_pct: Optional[float] = None
    rss_mb: Optional[float] = None
    try:
        p = psutil.Process()
        with p.oneshot():
            rss_mb = round(p.memory_info().rss / (1024 * 1024), 1)
            cpu_pct = round(p.cpu_percent(interval=None), 1)
    except psutil.Error:
        pass
    return {
        "resources": {"cpu_pct": cpu_pct, "rss_mb": rss_mb},
        "python": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        "host": {"platform": platform.system(), "release": platform.release(), "machine": platform.machine()},
    }
