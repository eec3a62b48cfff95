"""Utility helpers for compact, deterministic serialisation of payloads."""

from __future__ import annotations

from typing import Any

import orjson


def dumps(payload: Any) -> bytes:
    """Return *payload* as compact JSON bytes with stable key order."""

    return orjson.dumps(payload, option=orjson.OPT_SORT_KEYS)


def loads(data: bytes | str) -> Any:
    return orjson.loads(data)


__all__ = ["dumps", "loads"]
