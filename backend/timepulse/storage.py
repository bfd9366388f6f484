from __future__ import annotations

import json
import logging
from typing import Any, Iterable, List, Tuple

from pydantic import ValidationError
from sqlalchemy.orm import Session

from .engine import parse_to_minutes
from .models import ENTRIES_KEY, StoredBlob
from .schemas import ShiftRecord

logger = logging.getLogger(__name__)


def sort_entries(entries: Iterable[ShiftRecord]) -> List[ShiftRecord]:
    """Newest day first, later shifts first within a day."""
    return sorted(entries, key=lambda entry: (entry.date, parse_to_minutes(entry.start_time)), reverse=True)


def parse_entries(items: Iterable[Any]) -> Tuple[List[ShiftRecord], int]:
    """Validate raw entry dicts one by one; returns the records and the number skipped."""
    entries: List[ShiftRecord] = []
    skipped = 0
    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        try:
            entries.append(ShiftRecord.model_validate(item))
        except ValidationError as exc:
            skipped += 1
            logger.warning("Skipping unreadable entry %r: %s", item.get("id"), exc.errors()[0]["msg"])
    return entries, skipped


def load_entries(db: Session) -> List[ShiftRecord]:
    record = db.get(StoredBlob, ENTRIES_KEY)
    if not record or not record.value:
        return []
    try:
        decoded = json.loads(record.value)
    except json.JSONDecodeError:
        logger.warning("Stored entries are not valid JSON, starting empty")
        return []
    if not isinstance(decoded, list):
        logger.warning("Stored entries are not a list, starting empty")
        return []
    entries, _skipped = parse_entries(decoded)
    return sort_entries(entries)


def save_entries(db: Session, entries: Iterable[ShiftRecord]) -> List[ShiftRecord]:
    ordered = sort_entries(entries)
    value = json.dumps([entry.model_dump(by_alias=True, mode="json") for entry in ordered])
    record = db.get(StoredBlob, ENTRIES_KEY)
    if record:
        record.value = value
    else:
        db.add(StoredBlob(key=ENTRIES_KEY, value=value))
    db.commit()
    return ordered
