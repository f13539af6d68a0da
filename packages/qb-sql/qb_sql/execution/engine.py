"""Execution engine: runs synthesized DDL, one transaction per object.

Failures are rolled back and re-raised as :class:`MissingDependency` or
:class:`ConversionError` according to their SQLSTATE. A replacement that
changes an object's output shape (42P16/42P13) is retried once with the
object's own targeted drop prepended, inside the same transaction.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Callable, List, Optional, Sequence, Tuple

import sqlglot
from sqlglot.errors import TokenError
from sqlglot.tokens import TokenType

from ..schemas import ConversionResult
from .errors import (
    SHAPE_CHANGE_STATES,
    ConversionError,
    ExecutionFailure,
    MissingDependency,
    SQLState,
    failure_from_exception,
)
from .factory import DatabaseExecutor

logger = logging.getLogger(__name__)

_UNDEFINED_FUNCTION_NAME = re.compile(r"function\s+([\w.\"]+)\s*\(", re.I)


def split_statements(sql: str) -> List[str]:
    """Split a script at top-level ``;``.

    Tokenizes with the postgres dialect, so semicolons inside quoted strings
    and dollar-quoted bodies (``$$ ... $$``, ``$tag$ ... $tag$``) never end
    a statement. Segments holding only comments are dropped.
    """
    try:
        tokens = sqlglot.tokenize(sql, read="postgres")
    except TokenError as e:
        logger.debug("Script did not tokenize, running it as one statement: %s", e)
        text = sql.strip().rstrip(";").strip()
        return [text] if text else []

    parts: List[str] = []
    start, has_tokens = 0, False
    for token in tokens:
        if token.token_type == TokenType.SEMICOLON:
            if has_tokens:
                parts.append(sql[start:token.start].strip())
            start, has_tokens = token.end + 1, False
        else:
            has_tokens = True
    if has_tokens:
        parts.append(sql[start:].strip())
    return [p for p in parts if p]


class ExecutionEngine:
    """Executes DDL against the target database.

    Each thread gets its own executor from ``executor_factory`` so concurrent
    attempts commit and roll back independently.
    """

    def __init__(self, executor_factory: Callable[[], DatabaseExecutor]):
        self._factory = executor_factory
        self._local = threading.local()
        self._lock = threading.Lock()
        self._executors: List[DatabaseExecutor] = []

    def thread_executor(self) -> DatabaseExecutor:
        """Executor bound to the calling thread, connected on first use."""
        executor = getattr(self._local, "executor", None)
        if executor is None:
            executor = self._factory()
            executor.connect()
            self._local.executor = executor
            with self._lock:
                self._executors.append(executor)
        return executor

    def execute(self, result: ConversionResult, object_name: Optional[str] = None) -> ConversionResult:
        """Create the object described by ``result``.

        Raises:
            MissingDependency: A referenced object does not exist yet.
            ConversionError: Any other failure, including a result with no
                executable statement.
        """
        name = object_name or result.object_name
        if not result.is_executable:
            raise ConversionError(
                name,
                "no executable statement (" + "; ".join(result.warnings or ["empty conversion"]) + ")",
                sql=result.ddl or None,
            )

        try:
            try:
                self._run(name, result.statements, result.ddl)
            except ExecutionFailure as failure:
                if failure.sqlstate not in SHAPE_CHANGE_STATES or not result.drop_statement:
                    raise
                logger.info("%s changes shape; dropping and recreating", name)
                self._run(name, [result.drop_statement, *result.statements], result.ddl)
        except ExecutionFailure as failure:
            reclassified = self._reclassify(failure, result)
            if reclassified is failure:
                raise
            raise reclassified from failure

        logger.debug("Created %s %s", result.object_kind.value, name)
        return result

    def execute_statements(self, object_name: str, statements: Sequence[str]) -> None:
        """Run ready-made statements (tables, function stubs, corrected SQL)."""
        statements = [s for s in statements if s and s.strip()]
        if not statements:
            raise ConversionError(object_name, "no statements to execute")
        self._run(object_name, statements, ";\n".join(statements))

    def execute_script(self, object_name: str, sql: str) -> None:
        self.execute_statements(object_name, split_statements(sql))

    def _run(self, name: str, statements: Sequence[str], script: str) -> None:
        executor = self.thread_executor()
        try:
            executor.run_transaction([(s, ()) for s in statements])
        except Exception as e:
            failure = failure_from_exception(e, name, sql=script)
            logger.debug("%s failed [%s]: %s", name, failure.sqlstate, failure.message)
            raise failure from e

    @staticmethod
    def _reclassify(failure: ExecutionFailure, result: ConversionResult) -> ExecutionFailure:
        # Only the unmapped Access function the server names is terminal; a
        # missing user function can still be created in a later pass.
        if not (
            isinstance(failure, MissingDependency)
            and failure.sqlstate == SQLState.UNDEFINED_FUNCTION.value
            and result.unmapped_functions
        ):
            return failure
        match = _UNDEFINED_FUNCTION_NAME.search(failure.message)
        if not match:
            return failure
        missing = match.group(1).replace('"', "").rsplit(".", 1)[-1].lower()
        if missing not in {f.lower() for f in result.unmapped_functions}:
            return failure
        return ConversionError(
            failure.object_name,
            f"{failure.message} (unmapped: {', '.join(result.unmapped_functions)})",
            sqlstate=failure.sqlstate,
            sql=failure.sql,
        )

    def close(self) -> None:
        with self._lock:
            executors, self._executors = self._executors, []
        for executor in executors:
            executor.close()
        self._local = threading.local()

    def __enter__(self) -> "ExecutionEngine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def shared_executor(self) -> "ThreadBoundExecutor":
        return ThreadBoundExecutor(self)


class ThreadBoundExecutor:
    """Executor facade that routes every call to the engine's per-thread connection.

    Lets helpers such as the mapping repository and catalog loader run from
    worker threads without sharing a transaction with another attempt.
    """

    def __init__(self, engine: ExecutionEngine):
        self.engine = engine

    def execute(self, sql: str, params: tuple = ()) -> list:
        return self.engine.thread_executor().execute(sql, params)

    def run_transaction(self, steps: Sequence[Tuple[str, tuple]]) -> None:
        self.engine.thread_executor().run_transaction(steps)
