"""Fallback corrector: one external correction attempt per conversion error."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import replace
from typing import Callable, Optional

from ..catalog import SchemaCatalog
from ..execution.engine import ExecutionEngine, split_statements
from ..execution.errors import ConversionError, CorrectionServiceUnavailable, ExecutionFailure
from ..mapping import ControlMapping
from ..schemas import ConversionResult, QueryDefinition
from .prompts import CorrectionRequest, CorrectionResponse
from .service import CorrectionService

logger = logging.getLogger(__name__)


class FallbackCorrector:
    """Sends a failed conversion to a correction service and retries once.

    Args:
        engine: Engine used to execute the corrected SQL.
        service: Correction service; ``None`` means corrections are unavailable.
        catalog: Callable returning a fresh catalog snapshot of the target schema.
        mapping: Control mapping included in the request.
        timeout: Seconds to wait for the service before giving up.
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        service: Optional[CorrectionService] = None,
        catalog: Optional[Callable[[], SchemaCatalog]] = None,
        mapping: Optional[ControlMapping] = None,
        timeout: float = 60.0,
    ):
        self.engine = engine
        self.service = service
        self.catalog = catalog
        self.mapping = mapping
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return self.service is not None

    def build_request(
        self,
        query: QueryDefinition,
        result: ConversionResult,
        failure: ConversionError,
    ) -> CorrectionRequest:
        schema_snapshot = function_inventory = ""
        if self.catalog is not None:
            snapshot = self.catalog()
            schema_snapshot = snapshot.describe()
            function_inventory = snapshot.describe_functions()
        return CorrectionRequest(
            object_name=result.object_name,
            original_query=query.sql,
            failed_sql=failure.sql or result.ddl,
            error_message=failure.message,
            sqlstate=failure.sqlstate,
            schema_snapshot=schema_snapshot,
            function_inventory=function_inventory,
            control_mapping=self.mapping.describe() if self.mapping is not None else "",
        )

    def correct(
        self,
        query: QueryDefinition,
        result: ConversionResult,
        failure: ConversionError,
    ) -> ConversionResult:
        """Obtain corrected SQL and execute it exactly once.

        Returns:
            The corrected result, flagged ``assisted``.

        Raises:
            CorrectionServiceUnavailable: No service is configured.
            ConversionError: The service failed, timed out or returned SQL that
                also failed; carries the corrected SQL and its error.
        """
        if self.service is None:
            raise CorrectionServiceUnavailable(
                f"No correction service configured; {failure.object_name} needs review"
            )

        request = self.build_request(query, result, failure)
        response = self._request(request, failure)
        if not response.ok:
            raise self._terminal(failure, correction_error=response.error or "no corrected SQL returned")

        corrected = response.corrected_sql.strip()
        try:
            self.engine.execute_script(result.object_name, corrected)
        except ExecutionFailure as e:
            logger.warning("Corrected SQL for %s failed: %s", result.object_name, e.message)
            raise self._terminal(failure, corrected_sql=corrected, correction_error=e.message) from e

        logger.info("Imported %s with corrected SQL", result.object_name)
        return replace(
            result,
            statements=split_statements(corrected),
            warnings=[*result.warnings, f"Corrected after error: {failure.message}"],
            assisted=True,
        )

    def _request(self, request: CorrectionRequest, failure: ConversionError) -> CorrectionResponse:
        pool = ThreadPoolExecutor(max_workers=1)
        future = pool.submit(self.service.correct, request)
        try:
            return future.result(timeout=self.timeout)
        except FuturesTimeout:
            logger.warning("Correction for %s timed out after %ss", request.object_name, self.timeout)
            raise self._terminal(failure, correction_error=f"correction timed out after {self.timeout}s")
        except Exception as e:
            logger.warning("Correction service error for %s: %s", request.object_name, e)
            raise self._terminal(failure, correction_error=str(e)) from e
        finally:
            pool.shutdown(wait=False)

    @staticmethod
    def _terminal(
        failure: ConversionError,
        corrected_sql: Optional[str] = None,
        correction_error: Optional[str] = None,
    ) -> ConversionError:
        return ConversionError(
            failure.object_name,
            failure.message,
            sqlstate=failure.sqlstate,
            sql=failure.sql,
            corrected_sql=corrected_sql,
            correction_error=correction_error,
        )
