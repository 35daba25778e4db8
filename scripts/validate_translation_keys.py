#!/usr/bin/env python3
"""
Report keys present in the source language file but missing from the others.

Usage:
    python scripts/validate_translation_keys.py [--source en] [--strict]

With --strict the exit code is 1 when any language is incomplete (for CI).
"""
from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.duxa.modules.translations.utils import list_file_languages, missing_keys, read_translation_file
from scripts._db_utils import script_i18n_dir


def find_missing(i18n_dir: str, source: str = "en") -> dict[str, list[str]]:
    reference = read_translation_file(i18n_dir, source)
    report: dict[str, list[str]] = {}
    for code in list_file_languages(i18n_dir):
        if code == source:
            continue
        report[code] = missing_keys(reference, read_translation_file(i18n_dir, code))
    return report


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    source = "en"
    if "--source" in argv:
        idx = argv.index("--source")
        if idx + 1 < len(argv):
            source = argv[idx + 1]
    strict = "--strict" in argv
    i18n_dir = script_i18n_dir()

    report = find_missing(i18n_dir, source)
    incomplete = False
    for code, keys in sorted(report.items()):
        if not keys:
            print(f"{code}: complete")
            continue
        incomplete = True
        print(f"{code}: {len(keys)} missing")
        for key in keys:
            print(f"    {key}")
    return 1 if (strict and incomplete) else 0


if __name__ == "__main__":
    sys.exit(main())
