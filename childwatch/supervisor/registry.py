"""Bounded, ordered registry of supervised-process records."""

from __future__ import annotations

import logging
from typing import Iterator

from childwatch.contracts import DEFAULT_MAX_PROCESSES
from childwatch.errors import (
    CapacityExceededError,
    ConfigurationError,
    DuplicatePidError,
    NoActiveRecordError,
)
from childwatch.supervisor.models import ProcessRecord, RecordState

logger = logging.getLogger("childwatch.supervisor.registry")


class ProcessRegistry:
    """
    Records are appended during configuration only. Once frozen, the only
    mutation allowed is the pid/state bookkeeping done by the supervisor loop.
    """

    def __init__(self, capacity: int = DEFAULT_MAX_PROCESSES) -> None:
        if capacity < 1:
            raise ConfigurationError("registry capacity must be at least 1")
        self.capacity = capacity
        self._records: list[ProcessRecord] = []
        self._frozen = False
        self._released = False

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ProcessRecord]:
        return self.for_each()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def released(self) -> bool:
        return self._released

    def _check_writable(self) -> None:
        if self._frozen:
            raise ConfigurationError("registry is frozen; configuration already completed")

    def add_command(self, path: str) -> ProcessRecord:
        """Append a record for ``path``."""
        self._check_writable()
        if len(self._records) >= self.capacity:
            raise CapacityExceededError(self.capacity)
        if not path:
            raise ConfigurationError("command path must not be empty")
        record = ProcessRecord(index=len(self._records), path=path)
        self._records.append(record)
        return record

    def append_argument(self, arg: str) -> ProcessRecord:
        """Append ``arg`` to the argument vector of the most recently added record."""
        self._check_writable()
        if not self._records:
            raise NoActiveRecordError()
        record = self._records[-1]
        record.arguments.append(arg)
        return record

    def freeze(self) -> None:
        """Make every argument vector immutable. Safe to call twice."""
        if self._frozen:
            return
        for record in self._records:
            record.arguments = tuple(record.arguments)
        self._frozen = True

    def find_by_pid(self, pid: int | None) -> ProcessRecord | None:
        """Return the record currently holding ``pid``, or None when not found."""
        if pid is None or pid <= 0:
            return None
        for record in self._records:
            if record.pid == pid:
                return record
        return None

    def for_each(self) -> Iterator[ProcessRecord]:
        """Fresh iterator over all records in configuration order."""
        return iter(list(self._records))

    def tracked_pids(self) -> list[int]:
        return [record.pid for record in self._records if record.pid is not None]

    def assign_pid(self, record: ProcessRecord, pid: int) -> None:
        if pid <= 0:
            raise ValueError(f"invalid pid: {pid}")
        holder = self.find_by_pid(pid)
        if holder is not None and holder is not record:
            raise DuplicatePidError(f"pid {pid} already tracked by record #{holder.index}")
        record.pid = pid

    def clear_pid(self, record: ProcessRecord) -> None:
        record.pid = None

    def release(self) -> None:
        """Drop every record and its argument vector. Idempotent."""
        if self._released:
            return
        for record in self._records:
            record.pid = None
            record.state = RecordState.TERMINATED
            record.arguments = ()
        count = len(self._records)
        self._records = []
        self._released = True
        self._frozen = True
        logger.debug("Released %d registry records", count)
