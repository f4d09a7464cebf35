"""Participant session persistence.

A participant session binds one device to one workshop. It is stored as a
JSON record under ``workshop_<CODE>`` in whatever KeyValueStore the caller
provides (browser cookie, file, memory) and expires a fixed TTL after its
last write.
"""
from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .config import SESSION_KEY_PREFIX, SESSION_TIMEOUT
from .logger import get_logger
from .security import normalize_email, normalize_participant_name, normalize_workshop_code
from .storage import KeyValueStore


logger = get_logger(__name__)

_UNSET = object()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ParticipantSession:
    id: str
    workshop_code: str
    name: str
    joined_at: str
    email: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workshopCode": self.workshop_code,
            "name": self.name,
            "email": self.email,
            "joinedAt": self.joined_at,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict) -> "ParticipantSession":
        if not isinstance(data, dict):
            raise ValueError("Session payload must be an object")
        for field in ("id", "workshopCode", "name", "joinedAt"):
            if not isinstance(data.get(field), str) or not data[field]:
                raise ValueError(f"Session payload missing {field}")
        email = data.get("email")
        if email is not None and not isinstance(email, str):
            raise ValueError("Session email must be a string")
        return cls(
            id=data["id"],
            workshop_code=data["workshopCode"],
            name=data["name"],
            joined_at=data["joinedAt"],
            email=email or None,
        )


def session_key(workshop_code: str) -> str:
    return f"{SESSION_KEY_PREFIX}{normalize_workshop_code(workshop_code)}"


class ParticipantSessionManager:
    """Create, read, update and clear the session for one workshop code.

    Every write stores the record with the full TTL, so update() slides the
    expiry forward. Read failures never raise; they are logged and reported
    as "no session".
    """

    def __init__(
        self,
        workshop_code: str,
        store: KeyValueStore,
        ttl: timedelta = SESSION_TIMEOUT,
        now: Callable[[], datetime] = _utc_now,
        new_id: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.workshop_code = normalize_workshop_code(workshop_code)
        self.key = session_key(self.workshop_code)
        self._store = store
        self._ttl = ttl
        self._now = now
        self._new_id = new_id

    def get(self) -> Optional[ParticipantSession]:
        try:
            raw = self._store.read(self.key)
            if not raw:
                return None
            session = ParticipantSession.from_dict(json.loads(raw))
        except Exception as e:
            logger.warning("Failed to parse session data for %s: %s", self.key, e)
            return None
        if session.workshop_code != self.workshop_code:
            logger.warning("Session under %s belongs to workshop %s; ignoring", self.key, session.workshop_code)
            return None
        return session

    def set(self, name: str, email: Optional[str] = None) -> ParticipantSession:
        """Create a fresh session, replacing any existing one for this code."""
        session = ParticipantSession(
            id=self._new_id(),
            workshop_code=self.workshop_code,
            name=normalize_participant_name(name),
            email=normalize_email(email),
            joined_at=_iso(self._now()),
        )
        self._write(session)
        return session

    def update(self, name=_UNSET, email=_UNSET) -> Optional[ParticipantSession]:
        """Merge name and/or email into the stored session.

        Returns None without writing when there is no session to merge into.
        """
        current = self.get()
        if current is None:
            return None
        changes = {}
        if name is not _UNSET:
            changes["name"] = normalize_participant_name(name)
        if email is not _UNSET:
            changes["email"] = normalize_email(email)
        updated = replace(current, **changes)
        self._write(updated)
        return updated

    def clear(self) -> None:
        self._store.remove(self.key)

    def _write(self, session: ParticipantSession) -> None:
        self._store.write(self.key, session.to_json(), self._ttl)
