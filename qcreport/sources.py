from collections.abc import Mapping
import json
from pathlib import Path
from typing import Protocol


class RecordSource(Protocol):
    def fetch(self, type_id: str) -> list[dict[str, object]]: ...


def read_jsonl(input_path: Path) -> list[dict[str, object]]:
    if not input_path.exists():
        raise FileNotFoundError(f"input file not found: {input_path}")

    records: list[dict[str, object]] = []
    with input_path.open("r", encoding="utf-8") as infile:
        for line in infile:
            line = line.strip()
            if not line:
                continue
            records.append(json.loads(line))
    return records


class JsonlRecordSource:
    """Checklist rows exported one table per file: ``<input_dir>/<type_id>.jsonl``."""

    def __init__(self, input_dir: str | Path) -> None:
        self.input_dir = Path(input_dir)

    def fetch(self, type_id: str) -> list[dict[str, object]]:
        return read_jsonl(self.input_dir / f"{type_id}.jsonl")


class InMemoryRecordSource:
    def __init__(self, tables: Mapping[str, list[dict[str, object]]]) -> None:
        self.tables = dict(tables)

    def fetch(self, type_id: str) -> list[dict[str, object]]:
        return list(self.tables.get(type_id, []))
