"""
Donor pool loader.

The persistence layer owns donor records; for the CLI and local demos the pool is a
JSON file holding a list of donor objects. We validate it into typed Pydantic
models so the search core can assume a consistent shape.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import TypeAdapter

from bloodmap.core.env import resolve_project_path
from bloodmap.domain.models import DonorRecord


_DONORS_ADAPTER = TypeAdapter(list[DonorRecord])


def load_donors(path: str | Path) -> list[DonorRecord]:
    """Load and validate a donor pool JSON file.

    Accepts either a bare list or an object with a `donors` list (the shape the
    browser app exports).
    """
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("donors", [])
    return _DONORS_ADAPTER.validate_python(payload)
