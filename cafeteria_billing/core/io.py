"""File I/O helpers: JSON, JSONL and YAML plus company/consumption loaders."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from cafeteria_billing.core.billing.models import Company, ConsumptionEvent
from cafeteria_billing.core.errors import InvalidConfiguration


def ensure_dir(path: Union[str, Path]) -> Path:
    """Create directory and parents if needed, return Path."""
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def read_json(path: Union[str, Path]) -> Any:
    """Read a JSON file and return parsed contents."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Union[str, Path], data: Any, indent: int = 2) -> Path:
    """Write data to a JSON file."""
    p = Path(path)
    ensure_dir(p.parent)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False)
    return p


def read_jsonl(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read a JSONL file, return list of dicts."""
    rows: List[Dict[str, Any]] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                rows.append(json.loads(line))
    return rows


def write_jsonl(path: Union[str, Path], rows: List[Dict[str, Any]]) -> Path:
    """Write a list of dicts to a JSONL file."""
    p = Path(path)
    ensure_dir(p.parent)
    with open(p, "w", encoding="utf-8") as f:
        for row in rows:
            f.write(json.dumps(row, ensure_ascii=False) + "\n")
    return p


def read_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML file and return parsed contents."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


# ── Loaders ──────────────────────────────────────────────────────

def load_companies(path: Union[str, Path], include_anonymous: bool = False) -> List[Company]:
    """Load company records from a YAML file.

    Accepts either a top-level list or a mapping with a ``companies`` key::

        companies:
          - id: acme
            name: ACME Foods
            mealPrice: 80.00
            dailyTarget: 300
            targetDays: [1, 2, 3, 4]
    """
    data = read_yaml(path)
    records = data.get("companies", []) if isinstance(data, dict) else data
    if not isinstance(records, list):
        raise InvalidConfiguration(f"{path}: 'companies' must be a list")
    return [Company.from_dict(r, include_anonymous=include_anonymous) for r in records]


def load_consumptions(path: Union[str, Path]) -> List[ConsumptionEvent]:
    """Load consumption events from a JSONL file (one record per line)."""
    return [ConsumptionEvent.from_dict(d) for d in read_jsonl(path)]
