"""Runtime state store: live widget values keyed by (session, table, column).

Converted queries read this table through the subqueries the reference
resolver emits; the UI writes it. Writes are batched upserts where the last
value for a key wins, so two widgets bound to the same column converge on one
row. Background syncs are fire-and-forget: failures are logged, never raised
into the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert

from qb_shared.database import RuntimeState, get_session_context

from .conversion.names import sanitize_name
from .conversion.references import TEMPVARS_TABLE
from .mapping import ControlMapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateEntry:
    session_id: str
    table_name: str
    column_name: str
    value: Optional[str]

    @classmethod
    def create(cls, session_id: str, table: str, column: str, value: Any) -> "StateEntry":
        """Build an entry with case-folded names and a text value."""
        return cls(session_id, sanitize_name(table), sanitize_name(column), to_state_value(value))

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.session_id, self.table_name, self.column_name)


def to_state_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def normalize_entries(entries: Iterable[StateEntry]) -> List[StateEntry]:
    """Collapse duplicate keys, keeping the last value written."""
    latest: Dict[Tuple[str, str, str], StateEntry] = {}
    for entry in entries:
        latest[entry.key] = entry
    return list(latest.values())


def build_upsert(entries: List[StateEntry]):
    """INSERT ... ON CONFLICT DO UPDATE for already-normalized entries."""
    stmt = insert(RuntimeState).values([
        {
            "session_id": e.session_id,
            "table_name": e.table_name,
            "column_name": e.column_name,
            "value": e.value,
        }
        for e in entries
    ])
    return stmt.on_conflict_do_update(
        index_elements=["session_id", "table_name", "column_name"],
        set_={"value": stmt.excluded.value, "updated_at": func.now()},
    )


def collect_synced_values(
    session_id: str,
    mapping: ControlMapping,
    form: str,
    values: Mapping[str, Any],
) -> List[StateEntry]:
    """State entries for the bound controls of ``form``; unmapped controls are skipped."""
    entries = []
    for control, value in values.items():
        binding = mapping.lookup(form, control)
        if binding is None:
            logger.debug("Control %s.%s has no mapping; not synced", form, control)
            continue
        entries.append(StateEntry.create(session_id, binding.table, binding.column, value))
    return entries


def tempvar_entries(session_id: str, values: Mapping[str, Any]) -> List[StateEntry]:
    return [StateEntry.create(session_id, TEMPVARS_TABLE, name, value) for name, value in values.items()]


class RuntimeStateStore:
    """Async access to ``shared.runtime_state``.

    Args:
        session_factory: Callable returning an async context manager that
            yields a session and commits on exit. Defaults to
            :func:`qb_shared.database.get_session_context`.
    """

    def __init__(self, session_factory: Optional[Callable] = None):
        self._session_factory = session_factory or get_session_context
        self._tasks: Set[asyncio.Task] = set()

    async def upsert(self, entries: Iterable[StateEntry]) -> int:
        """Write entries in one statement. Returns the number of distinct keys written."""
        batch = normalize_entries(entries)
        if not batch:
            return 0
        async with self._session_factory() as session:
            await session.execute(build_upsert(batch))
        logger.debug("Synced %d runtime state entries", len(batch))
        return len(batch)

    async def read(self, session_id: str) -> Dict[Tuple[str, str], Optional[str]]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RuntimeState.table_name, RuntimeState.column_name, RuntimeState.value)
                .where(RuntimeState.session_id == session_id)
            )
            return {(row[0], row[1]): row[2] for row in result.all()}

    async def clear_session(self, session_id: str) -> int:
        """Delete every entry of a session (teardown)."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(RuntimeState).where(RuntimeState.session_id == session_id)
            )
        removed = result.rowcount or 0
        logger.debug("Cleared %d runtime state entries for session %s", removed, session_id)
        return removed

    def sync_in_background(self, entries: Iterable[StateEntry]) -> asyncio.Task:
        """Schedule an upsert on the running loop without awaiting it."""
        task = asyncio.get_running_loop().create_task(self.upsert(list(entries)))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Runtime state sync failed: %s", exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for outstanding background syncs (shutdown, tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
