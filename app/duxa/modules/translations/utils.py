"""
Helpers for the nested i18n JSON files (i18n/<code>.json).

Files are nested objects; the database and the editor work on dotted keys
("nav.login"). Everything here is pure and shared by the web editor and the
sync scripts.
"""
from __future__ import annotations

import json
import os
import re
from datetime import datetime
from typing import Any

META_FILENAME = ".translation_sync_meta.json"
_LANG_CODE = re.compile(r"^[a-z]{2,3}(?:-[A-Za-z]{2,4})?$")


def flatten(obj: dict, prefix: str = "") -> dict[str, str]:
    out: dict[str, str] = {}
    for key, value in obj.items():
        full = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            out.update(flatten(value, full))
        else:
            out[full] = "" if value is None else str(value)
    return out


def set_path(obj: dict, dotted_key: str, value: Any) -> None:
    parts = dotted_key.split(".")
    node = obj
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value


def get_path(obj: dict, dotted_key: str, default: Any = None) -> Any:
    node: Any = obj
    for part in dotted_key.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def unflatten(flat: dict[str, Any]) -> dict:
    out: dict = {}
    for key, value in flat.items():
        set_path(out, key, value)
    return out


def missing_keys(source: dict, target: dict) -> list[str]:
    """Dotted keys present in `source` but absent from `target`, in source order."""
    target_keys = set(flatten(target))
    return [k for k in flatten(source) if k not in target_keys]


def is_valid_language_code(code: str | None) -> bool:
    return bool(code) and bool(_LANG_CODE.match(code))


def translation_file_path(i18n_dir: str, code: str) -> str:
    if not is_valid_language_code(code):
        raise ValueError(f"Invalid language code: {code!r}")
    return os.path.join(i18n_dir, f"{code}.json")


def read_translation_file(i18n_dir: str, code: str) -> dict:
    try:
        with open(translation_file_path(i18n_dir, code), "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def write_translation_file(i18n_dir: str, code: str, data: dict) -> str:
    path = translation_file_path(i18n_dir, code)
    os.makedirs(i18n_dir, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
        f.write("\n")
    return path


def list_file_languages(i18n_dir: str) -> list[str]:
    try:
        names = os.listdir(i18n_dir)
    except OSError:
        return []
    return sorted(n[: -len(".json")] for n in names if n.endswith(".json") and not n.startswith("."))


def meta_path(i18n_dir: str) -> str:
    return os.path.join(os.path.dirname(os.path.abspath(i18n_dir)), META_FILENAME)


def read_last_sync(path: str) -> datetime:
    """Timestamp of the last DB -> file pull; epoch when the meta file is missing or corrupt."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f).get("last_sync")
        return datetime.fromisoformat(raw)
    except (OSError, ValueError, TypeError, AttributeError):
        return datetime(1970, 1, 1)


def write_last_sync(path: str, when: datetime) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"last_sync": when.isoformat()}, f, indent=2)
        f.write("\n")
