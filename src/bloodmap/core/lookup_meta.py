"""
Per-request geocode lookup metadata.

A contextvar-backed recorder the geocoder uses to report, for each lookup:
- which provider answered (or `cache`),
- which providers were tried and failed.

The API layer attaches this to `SearchOutcome.meta` so the UI can show where a
pin came from.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator


@dataclass
class LookupMeta:
    lookups: dict[str, dict[str, Any]] = field(default_factory=dict)

    def record(self, name: str, payload: dict[str, Any]) -> None:
        if not name:
            return
        self.lookups[name] = dict(payload)


_lookup_meta_var: contextvars.ContextVar[LookupMeta | None] = contextvars.ContextVar(
    "bloodmap_lookup_meta", default=None
)


def record_lookup(name: str, payload: dict[str, Any]) -> None:
    meta = _lookup_meta_var.get()
    if not meta:
        return
    meta.record(name, payload)


@contextmanager
def capture_lookup_meta() -> Iterator[LookupMeta]:
    meta = LookupMeta()
    token = _lookup_meta_var.set(meta)
    try:
        yield meta
    finally:
        _lookup_meta_var.reset(token)
