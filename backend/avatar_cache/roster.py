"""
Roster Import

Reads the list of identity keys from a JSON file. Accepted shapes:

    ["alice", "bob"]
    [{"name": "Alice", "githubId": "alice"}, ...]
    {"committers": [...either of the above...]}
"""

import json
import logging
from pathlib import Path
from typing import Any, List, Union

from .errors import RosterError
from .models import is_valid_key

logger = logging.getLogger(__name__)

KEY_FIELDS = ("githubId", "key")


def _extract_key(item: Any) -> Any:
    if isinstance(item, dict):
        for field_name in KEY_FIELDS:
            if field_name in item:
                return item[field_name]
        return None
    return item


def parse_roster(data: Any) -> List[str]:
    """Extract unique, valid keys from decoded roster data, preserving order."""
    if isinstance(data, dict):
        data = data.get("committers")
    if not isinstance(data, list):
        raise RosterError("Roster must be a list or an object with a 'committers' list")

    keys: List[str] = []
    seen = set()
    for item in data:
        key = _extract_key(item)
        if not is_valid_key(key):
            logger.warning(f"[Roster] Skipping invalid roster entry: {item!r}")
            continue
        if key in seen:
            continue
        seen.add(key)
        keys.append(key)
    return keys


def load_roster(path: Union[str, Path]) -> List[str]:
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise RosterError(f"Cannot read roster {path}: {e}") from e
    except ValueError as e:
        raise RosterError(f"Invalid roster JSON in {path}: {e}") from e

    keys = parse_roster(data)
    logger.info(f"[Roster] Loaded {len(keys)} keys from {path}")
    return keys
