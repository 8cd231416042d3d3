"""Persistence sinks receiving ended trace sessions."""
from __future__ import annotations

import abc
import asyncio
import json
import time
from pathlib import Path
from typing import Any, Dict, List


class TraceSink(abc.ABC):
    """Destination for ended trace sessions."""

    @abc.abstractmethod
    async def append(self, record: Dict[str, Any]) -> None:
        """Durably store one serialised session."""


class MemoryTraceSink(TraceSink):
    """Keep records in a list; handy for tests and embedding."""

    def __init__(self) -> None:
        self.records: List[Dict[str, Any]] = []

    async def append(self, record: Dict[str, Any]) -> None:
        self.records.append(record)


class JsonFileTraceSink(TraceSink):
    """Write one JSON document per session into a directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    async def append(self, record: Dict[str, Any]) -> None:
        session_id = record["session"]["id"]
        path = self.directory / f"trace_{session_id}_{int(time.time() * 1000)}.json"
        await asyncio.to_thread(self._write, path, record)

    def _write(self, path: Path, record: Dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(record, indent=2, default=str), encoding="utf-8")
