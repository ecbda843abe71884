"""Feature registry: prior human claims about feature status, read from JSON or CSV."""
from __future__ import annotations

import csv
import io
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from plancheck.models import FeatureCandidate

_NAME_KEYS = ("description", "name", "title", "feature")
_ID_KEYS = ("id", "featureId", "feature_id", "key")
_STATUS_KEYS = ("status", "state", "priorStatus")
_COLLECTION_KEYS = ("features", "items", "data")


def normalize_name(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", " ", (value or "").lower()).strip()


def _first(row: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = row.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


@dataclass
class FeatureRegistry:
    by_name: dict[str, str] = field(default_factory=dict)
    by_id: dict[str, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.by_name) + len(self.by_id)

    def add(self, name: str, status: str, feature_id: str = "") -> None:
        token = status.strip().lower()
        if not token:
            return
        if name:
            self.by_name[normalize_name(name)] = token
        if feature_id:
            self.by_id[feature_id.strip().lower()] = token

    def lookup(self, candidate: FeatureCandidate) -> str | None:
        key = normalize_name(candidate.description)
        if key in self.by_name:
            return self.by_name[key]
        words = set(re.findall(r"[a-z0-9][a-z0-9_.-]*", candidate.description.lower()))
        for feature_id, status in self.by_id.items():
            if feature_id in words:
                return status
        return None


def _rows_from_json(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, dict)]
    if isinstance(payload, dict):
        for key in _COLLECTION_KEYS:
            nested = payload.get(key)
            if isinstance(nested, list):
                return [row for row in nested if isinstance(row, dict)]
        rows: list[dict[str, Any]] = []
        for name, value in payload.items():
            if isinstance(value, str):
                rows.append({"name": name, "status": value})
            elif isinstance(value, dict):
                rows.append({"name": name, **value})
        return rows
    raise ValueError("Feature registry JSON must be a list or an object")


def parse_registry(text: str, fmt: str) -> FeatureRegistry:
    """Parse registry content; ``fmt`` is ``json`` or ``csv``."""
    registry = FeatureRegistry()
    token = (fmt or "").strip().lower().lstrip(".")
    if token == "json":
        try:
            payload = json.loads(text) if text.strip() else []
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid feature registry JSON: {exc}") from exc
        rows = _rows_from_json(payload)
    elif token == "csv":
        rows = list(csv.DictReader(io.StringIO(text)))
    else:
        raise ValueError(f"Unsupported feature registry format: {fmt}")

    for row in rows:
        status = _first(row, _STATUS_KEYS)
        registry.add(_first(row, _NAME_KEYS), status, _first(row, _ID_KEYS))
    return registry


def load_registry(path: str | Path) -> FeatureRegistry:
    file_path = Path(path).expanduser()
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read feature registry {file_path}: {exc}") from exc
    return parse_registry(text, file_path.suffix)


def apply_registry(candidates: list[FeatureCandidate], registry: FeatureRegistry) -> list[FeatureCandidate]:
    """Return copies of ``candidates`` with ``priorStatus`` taken from the registry where it has an entry."""
    updated: list[FeatureCandidate] = []
    for candidate in candidates:
        status = registry.lookup(candidate)
        updated.append(candidate.model_copy(update={"priorStatus": status}) if status else candidate)
    return updated
