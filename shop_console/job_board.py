"""
In-memory print queue kept in step with realtime change events.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

TABS = ("pending", "queued", "printing", "completed", "cancelled")


def _parse_ts(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None


class JobBoard:
    """
    The shop's job list, newest first.

    `apply` returns True when the board changed and False when the event was
    ignored. `needs_refetch` is set when an event could not be reconciled and
    the caller should reload the list from the backend.
    """

    def __init__(self):
        self.jobs: List[dict] = []
        self.needs_refetch = False

    def load(self, jobs: List[dict]):
        self.jobs = []
        seen = set()
        for job in jobs:
            if job.get("id") in seen:
                continue
            seen.add(job.get("id"))
            self.jobs.append(dict(job))
        self.needs_refetch = False

    def _index(self, job_id) -> Optional[int]:
        for i, job in enumerate(self.jobs):
            if job.get("id") == job_id:
                return i
        return None

    def get(self, job_id) -> Optional[dict]:
        i = self._index(job_id)
        return self.jobs[i] if i is not None else None

    def apply(self, event: dict) -> bool:
        if not isinstance(event, dict):
            logger.warning(f"Ignoring non-object change event {event!r}")
            return False
        event_type = event.get("eventType")
        new = event.get("new") or {}
        old = event.get("old") or {}
        if not isinstance(new, dict) or not isinstance(old, dict):
            logger.warning(f"Ignoring {event_type} event with malformed rows")
            return False

        if event_type == "INSERT":
            if not new.get("id") or self._index(new["id"]) is not None:
                return False
            self.jobs.insert(0, dict(new))
            return True

        if event_type == "UPDATE":
            if not new.get("id"):
                return False
            i = self._index(new["id"])
            if i is None:
                self.jobs.insert(0, dict(new))
                return True
            held = _parse_ts(self.jobs[i].get("updated_at"))
            incoming = _parse_ts(new.get("updated_at"))
            if held and incoming and incoming < held:
                logger.debug(f"Ignoring stale update for job {new['id']}")
                return False
            self.jobs[i] = {**self.jobs[i], **new}
            return True

        if event_type == "DELETE":
            job_id = old.get("id") or new.get("id")
            i = self._index(job_id)
            if i is None:
                return False
            del self.jobs[i]
            return True

        logger.warning(f"Unknown change event {event_type!r}, refetch needed")
        self.needs_refetch = True
        return False

    def status_counts(self) -> Dict[str, int]:
        counts = {"all": len(self.jobs)}
        for tab in TABS:
            counts[tab] = sum(1 for job in self.jobs if job.get("status") == tab)
        return counts

    def by_status(self, tab: str = "all") -> List[dict]:
        if tab == "all":
            return list(self.jobs)
        return [job for job in self.jobs if job.get("status") == tab]
