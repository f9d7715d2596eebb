from __future__ import annotations

from importlib import resources
from importlib.resources.abc import Traversable
from typing import Optional

SCHEMA_DIR = "schema"


def resource_path(*parts: str) -> Optional[Traversable]:
    try:
        data = resources.files("promptforge")
    except Exception:
        return None
    for part in parts:
        data = data.joinpath(part)
    return data


def read_text(*parts: str) -> str:
    data = resource_path(*parts)
    if not data:
        return ""
    try:
        return data.read_text(encoding="utf-8")
    except Exception:
        return ""


def read_schema_text(name: str) -> str:
    return read_text(SCHEMA_DIR, name)
