from __future__ import annotations

import json
import logging
from threading import RLock
from typing import Any, Dict, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from .models import SETTINGS_KEY, StoredBlob
from .schemas import PayPolicy

logger = logging.getLogger(__name__)


def load_policy_blob(value: Optional[str]) -> PayPolicy:
    """Decode a stored settings blob, merging it over the defaults."""
    if not value:
        return PayPolicy()
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        logger.warning("Stored settings are not valid JSON, using defaults")
        return PayPolicy()
    if not isinstance(decoded, dict):
        logger.warning("Stored settings are not an object, using defaults")
        return PayPolicy()
    try:
        return PayPolicy.model_validate(decoded)
    except ValidationError as exc:
        logger.warning("Stored settings could not be read (%s), using defaults", exc.error_count())
        return PayPolicy()


def dump_policy_blob(policy: PayPolicy) -> str:
    return json.dumps(policy.model_dump(by_alias=True, mode="json"))


class PolicyState:
    """Holds the current pay policy; readers always get one immutable snapshot."""

    def __init__(self, policy: Optional[PayPolicy] = None):
        self._lock = RLock()
        self._policy = policy or PayPolicy()

    def snapshot(self) -> PayPolicy:
        with self._lock:
            return self._policy

    def replace(self, policy: PayPolicy) -> PayPolicy:
        with self._lock:
            self._policy = policy
            return self._policy

    def apply(self, updates: Dict[str, Any]) -> PayPolicy:
        """Validate ``updates`` as a complete policy (missing keys take defaults)."""
        return self.replace(PayPolicy.model_validate(updates))

    def load_from_db(self, session: Session) -> PayPolicy:
        record = session.get(StoredBlob, SETTINGS_KEY)
        policy = load_policy_blob(record.value if record else None)
        return self.replace(policy)

    def persist(self, session: Session) -> None:
        value = dump_policy_blob(self.snapshot())
        record = session.get(StoredBlob, SETTINGS_KEY)
        if record:
            record.value = value
        else:
            session.add(StoredBlob(key=SETTINGS_KEY, value=value))
        session.commit()
        logger.info("Pay policy saved")
