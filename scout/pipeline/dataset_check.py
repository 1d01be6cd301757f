"""
Dataset validation.

Checks a case-study dataset file against the JSON schema and the dataset
invariants:
1. ids are unique
2. titles carry a currency token
3. verified items have 2+ proof sources and a currency-bearing excerpt
4. the first currency-bearing excerpt does not describe fundraising
5. proof URLs are unique across the dataset

Usage:
    python -m scout.pipeline.dataset_check path/to/case-studies.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import jsonschema

from scout.pipeline.money import has_currency_token, mentions_funding
from scout.pipeline.models import STATUS_VERIFIED, normalize_status

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "schemas" / "case_studies.schema.json"


def load_schema(schema_path: Optional[Path] = None) -> dict:
    with open(schema_path or DEFAULT_SCHEMA_PATH) as f:
        return json.load(f)


def validate_dataset(items: Any, schema_path: Optional[Path] = None) -> List[str]:
    """
    Validate a parsed dataset.

    Returns:
        List of error messages (empty if valid)
    """
    errors: List[str] = []

    validator = jsonschema.Draft7Validator(load_schema(schema_path))
    for err in sorted(validator.iter_errors(items), key=lambda e: [str(p) for p in e.absolute_path]):
        path = "".join(f"[{p}]" if isinstance(p, int) else f".{p}" for p in err.absolute_path)
        errors.append(f"caseStudies{path}: {err.message}")

    if not isinstance(items, list):
        return errors

    ids = set()
    urls = {}
    for i, cs in enumerate(items):
        at = f"caseStudies[{i}]"
        if not isinstance(cs, dict):
            continue

        cs_id = cs.get("id")
        if isinstance(cs_id, str) and cs_id:
            if cs_id in ids:
                errors.append(f"{at}.id is duplicated: {cs_id}")
            ids.add(cs_id)

        title = cs.get("title") if isinstance(cs.get("title"), str) else ""
        if title and not has_currency_token(title):
            errors.append(f"{at}.title must include a $ amount")

        sources = [s for s in (cs.get("proofSources") or []) if isinstance(s, dict)]
        excerpts = [s.get("excerpt") for s in sources if isinstance(s.get("excerpt"), str)]
        money_excerpt = next((e for e in excerpts if has_currency_token(e)), None)
        if mentions_funding(money_excerpt):
            errors.append(f"{at} cites fundraising as its revenue evidence")
        for s in sources:
            url = s.get("url")
            if isinstance(url, str) and url:
                if url in urls and urls[url] != i:
                    errors.append(f"{at} reuses proof URL from caseStudies[{urls[url]}]: {url}")
                urls.setdefault(url, i)

        if normalize_status(cs.get("status")) == STATUS_VERIFIED:
            if len(sources) < 2:
                errors.append(f"{at} is verified but has fewer than 2 proof sources")
            if not any(has_currency_token(s.get("excerpt")) for s in sources):
                errors.append(f"{at} is verified but no proof excerpt contains a $ amount")

    return errors


def validate_dataset_file(path: str, schema_path: Optional[Path] = None) -> List[str]:
    try:
        with open(path) as f:
            items = json.load(f)
    except json.JSONDecodeError as e:
        return [f"Invalid JSON in {path}: {e}"]
    except OSError as e:
        return [f"Cannot read {path}: {e}"]
    return validate_dataset(items, schema_path)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Validate a case-study dataset file")
    parser.add_argument("path", help="Path to the dataset JSON")
    parser.add_argument("--schema", help="Path to the JSON schema")
    args = parser.parse_args(argv)

    errors = validate_dataset_file(args.path, Path(args.schema) if args.schema else None)
    for err in errors:
        print(err, file=sys.stderr)
    if errors:
        print(f"FAILED: {len(errors)} problem(s)", file=sys.stderr)
        return 1

    with open(args.path) as f:
        count = len(json.load(f))
    print(f"OK: {count} case studies validated.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
