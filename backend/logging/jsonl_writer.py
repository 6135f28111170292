from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Dict, Optional, TextIO


class DispatchLogWriter:
    """Append-only JSONL log of aggregation dispatches.

    **Invariants:**
      * **Record ordering:** each ``write(record)`` appends exactly one JSON
        object line, in call order. Concurrent writers are serialized by a lock.
      * **Key ordering:** keys are emitted in the insertion order of the input.
      * **Separators:** compact ``(",", ":")``, one newline per record.
      * **Encoding:** UTF-8, literal (unescaped) Unicode.
      * **Flush:** every ``write`` flushes before returning.

    Records never contain proof bytes or signals, only identifiers and
    outcomes (see ``backend.orchestrator.pipeline``).
    """

    def __init__(self, path: str) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file: Optional[TextIO] = self._path.open("a", encoding="utf-8")
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def write(self, record: Dict[str, Any]) -> None:
        line = json.dumps(record, separators=(",", ":"), ensure_ascii=False)
        with self._lock:
            if self._file is None:
                raise ValueError("Cannot write to a closed DispatchLogWriter.")
            self._file.write(f"{line}\n")
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    @property
    def closed(self) -> bool:
        return self._file is None

    def __enter__(self) -> "DispatchLogWriter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def count_records(path: str) -> int:
    """Number of records in a dispatch log (0 if it does not exist)."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return sum(1 for line in f if line.strip())
    except FileNotFoundError:
        return 0
