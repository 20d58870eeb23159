"""
Append-only JSON-lines recorder for session events.
"""
from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import IO, Any


def _json_default(value: Any) -> Any:
    isoformat = getattr(value, "isoformat", None)
    if callable(isoformat):
        return isoformat()
    return str(value)


def event_to_record(event: Any) -> dict[str, Any]:
    """Flatten a dataclass event into a JSON-ready dict tagged with its type."""
    if dataclasses.is_dataclass(event) and not isinstance(event, type):
        return {"event_type": type(event).__name__, **dataclasses.asdict(event)}
    return {"event_type": type(event).__name__, "event": str(event)}


class FileRecorderSink:
    """Writes each event as one JSON line.

    The file is opened on the first event, so a session that emits nothing
    leaves no file behind. Datetimes are written as ISO 8601 strings.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.records_written = 0
        self._fh: IO[str] | None = None
        self._closed = False

    def on_event(self, event: Any) -> None:
        if self._closed:
            return
        if self._fh is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self.path.open("a", encoding="utf-8")

        self._fh.write(json.dumps(event_to_record(event), default=_json_default) + "\n")
        self._fh.flush()
        self.records_written += 1

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._fh is not None:
            self._fh.close()
            self._fh = None
