"""Idempotent add/delete of host records on top of a non-atomic backend."""

from __future__ import annotations

from typing import Any, Protocol

import structlog

from .changeset import Action, ChangeSet, HostRecord
from .errors import InvalidAction, RecordNotFound


class RecordBackend(Protocol):
    def list_records(self) -> list[HostRecord]: ...

    def apply_change(self, change: ChangeSet) -> None: ...


def find_record(hostname: str, records: list[HostRecord]) -> HostRecord | None:
    for record in records:
        if record.hostname == hostname:
            return record
    return None


class RecordReconciler:
    """Applies change sets so the backend holds at most one record per hostname.

    Current records are fetched before every mutation; nothing is cached.
    """

    def __init__(self, backend: RecordBackend, logger: Any = None) -> None:
        self.backend = backend
        self._log = logger or structlog.get_logger(__name__)

    def modify(self, change: ChangeSet) -> None:
        """Dispatch on the change set action."""
        if change.action is Action.ADD:
            self.add(change)
        elif change.action is Action.DELETE:
            self.delete(change)
        else:
            raise InvalidAction(f"Unsupported action [{change.action}]")

    def add(self, change: ChangeSet) -> None:
        """Create the record, replacing an existing one that points elsewhere."""
        log = self._log.bind(hostname=change.hostname, ip=change.ip)
        existing = find_record(change.hostname, self.backend.list_records())

        if existing is not None:
            if existing == change.record:
                log.info("Record already exists with hostname and ip")
                return

            # No update primitive: delete the old pair, then add.
            log.info("Record exists with a different ip, replacing", old_ip=existing.ip)
            self.backend.apply_change(ChangeSet(record=existing, action=Action.DELETE))

        log.info("Creating record")
        self.backend.apply_change(change)
        log.info("Created record")

    def delete(self, change: ChangeSet) -> None:
        """Remove the record.

        Raises:
            RecordNotFound: the backend holds no record for the hostname
        """
        log = self._log.bind(hostname=change.hostname, ip=change.ip)
        if find_record(change.hostname, self.backend.list_records()) is None:
            raise RecordNotFound(change.hostname)

        log.info("Deleting record")
        self.backend.apply_change(change)
        log.info("Deleted record")
