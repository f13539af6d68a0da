"""Multi-pass import orchestrator.

Objects are imported kind by kind (tables, forms, reports, function stubs,
queries). Within a kind every pass attempts all pending objects:

- success: removed, reported ``imported`` (or ``assisted`` after correction)
- missing dependency: stays pending for the next pass
- conversion error: removed, reported ``needs-review``

Passes stop when nothing is pending, when a pass imports nothing, or at the
pass cap. Whatever is still pending is reported ``unresolved``. No
dependency order has to be computed up front.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Sequence, Tuple

from .importers import AttemptResult, BaseImporter
from .schemas import (
    AttemptOutcome,
    BatchKind,
    ImportAttempt,
    ImportBatch,
    ImportObject,
    ImportStatus,
    ImportSummary,
    ObjectReport,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_PASSES = 20


@dataclass(frozen=True)
class BatchProgress:
    """Immutable accumulator threaded through the pass loop."""
    reports: Tuple[ObjectReport, ...] = ()
    attempts: Tuple[ImportAttempt, ...] = ()
    passes: Tuple[Tuple[BatchKind, int], ...] = ()

    def with_attempt(self, attempt: ImportAttempt) -> "BatchProgress":
        return replace(self, attempts=self.attempts + (attempt,))

    def with_report(self, report: ObjectReport) -> "BatchProgress":
        return replace(self, reports=self.reports + (report,))

    def with_passes(self, kind: BatchKind, count: int) -> "BatchProgress":
        return replace(self, passes=self.passes + ((kind, count),))

    def summary(self) -> ImportSummary:
        return ImportSummary(reports=self.reports, attempts=self.attempts, passes=self.passes)


_STATUS = {
    AttemptOutcome.IMPORTED: ImportStatus.IMPORTED,
    AttemptOutcome.ASSISTED_SUCCESS: ImportStatus.ASSISTED,
    AttemptOutcome.CONVERSION_ERROR: ImportStatus.NEEDS_REVIEW,
}


class ImportOrchestrator:
    """Runs import batches.

    Args:
        importers: Importer per batch kind.
        max_passes: Hard cap on passes per kind.
        workers: Concurrent attempts per pass; 1 runs sequentially in batch order.
    """

    def __init__(
        self,
        importers: Mapping[BatchKind, BaseImporter],
        max_passes: int = DEFAULT_MAX_PASSES,
        workers: int = 1,
    ):
        if max_passes < 1:
            raise ValueError("max_passes must be at least 1")
        self.importers = dict(importers)
        self.max_passes = max_passes
        self.workers = max(1, workers)

    def run(self, batch: ImportBatch) -> ImportSummary:
        progress = BatchProgress()
        for kind in batch.kinds:
            objects = batch.objects_of(kind)
            if not objects:
                continue
            importer = self.importers.get(kind)
            if importer is None:
                logger.warning("No importer for %s; %d objects need review", kind.value, len(objects))
                for obj in objects:
                    progress = progress.with_report(
                        AttemptResult(
                            outcome=AttemptOutcome.CONVERSION_ERROR,
                            error=f"no importer for kind {kind.value}",
                        ).to_report(obj.name, kind, ImportStatus.NEEDS_REVIEW, 0)
                    )
                continue
            progress = self._run_kind(kind, objects, importer, progress)

        summary = progress.summary()
        logger.info(
            "Import finished: %d imported, %d assisted, %d need review, %d unresolved",
            len(summary.imported), len(summary.assisted),
            len(summary.needs_review), len(summary.unresolved),
        )
        return summary

    def _run_kind(
        self,
        kind: BatchKind,
        objects: Sequence[ImportObject],
        importer: BaseImporter,
        progress: BatchProgress,
    ) -> BatchProgress:
        pending: List[ImportObject] = list(objects)
        last: Dict[str, AttemptResult] = {}
        pass_number = 0

        while pending and pass_number < self.max_passes:
            pass_number += 1
            importer.prepare_pass()
            still_pending: List[ImportObject] = []
            successes = 0

            for obj, result in self._attempt_all(importer, pending):
                progress = progress.with_attempt(
                    ImportAttempt(obj.name, kind, pass_number, result.outcome, result.error)
                )
                if result.outcome is AttemptOutcome.MISSING_DEPENDENCY:
                    still_pending.append(obj)
                    last[obj.name] = result
                    continue
                if result.outcome.succeeded:
                    successes += 1
                progress = progress.with_report(
                    result.to_report(obj.name, kind, _STATUS[result.outcome], pass_number)
                )

            logger.info(
                "%s pass %d: %d imported, %d deferred",
                kind.value, pass_number, successes, len(still_pending),
            )
            pending = still_pending
            if successes == 0:
                break

        for obj in pending:
            result = last.get(obj.name) or AttemptResult(outcome=AttemptOutcome.MISSING_DEPENDENCY)
            progress = progress.with_report(
                result.to_report(obj.name, kind, ImportStatus.UNRESOLVED, pass_number)
            )
        if pending:
            logger.warning("%s: %d objects unresolved after %d passes", kind.value, len(pending), pass_number)
        return progress.with_passes(kind, pass_number)

    def _attempt_all(
        self,
        importer: BaseImporter,
        pending: List[ImportObject],
    ) -> List[Tuple[ImportObject, AttemptResult]]:
        """Attempt every pending object; results come back in batch order."""
        if self.workers == 1 or len(pending) == 1:
            return [(obj, _safe_attempt(importer, obj)) for obj in pending]

        results: Dict[int, AttemptResult] = {}
        with ThreadPoolExecutor(max_workers=min(self.workers, len(pending))) as pool:
            futures = {pool.submit(_safe_attempt, importer, obj): i for i, obj in enumerate(pending)}
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        return [(obj, results[i]) for i, obj in enumerate(pending)]


def _safe_attempt(importer: BaseImporter, obj: ImportObject) -> AttemptResult:
    try:
        return importer.attempt(obj)
    except Exception as e:
        logger.error("Importer crashed on %s: %s", obj.name, e, exc_info=True)
        return AttemptResult(outcome=AttemptOutcome.CONVERSION_ERROR, error=f"importer crashed: {e}")


def import_batch(
    batch: ImportBatch,
    importers: Mapping[BatchKind, BaseImporter],
    max_passes: int = DEFAULT_MAX_PASSES,
    workers: int = 1,
) -> ImportSummary:
    return ImportOrchestrator(importers, max_passes=max_passes, workers=workers).run(batch)
