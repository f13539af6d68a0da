"""Multi-pass import orchestrator tests.

The fake importer succeeds once every dependency of an object has been
imported; nothing in the orchestrator knows the dependency graph.
"""

import threading
from typing import Dict, Iterable, Optional, Set

import pytest

from qb_sql.importers import AttemptResult, BaseImporter, FormImporter
from qb_sql.mapping import ControlMapping
from qb_sql.orchestrator import DEFAULT_MAX_PASSES, BatchProgress, ImportOrchestrator
from qb_sql.schemas import (
    AttemptOutcome,
    BatchKind,
    ImportAttempt,
    ImportBatch,
    ImportObject,
    ImportStatus,
)


class GraphImporter(BaseImporter):

    def __init__(
        self,
        kind: BatchKind,
        depends: Dict[str, Iterable[str]],
        created: Set[str],
        broken: Iterable[str] = (),
        assisted: Iterable[str] = (),
        crash: Iterable[str] = (),
    ):
        self.kind = kind
        self.depends = {k: set(v) for k, v in depends.items()}
        self.created = created
        self.broken = set(broken)
        self.assisted = set(assisted)
        self.crash = set(crash)
        self.passes_prepared = 0
        self._lock = threading.Lock()

    def prepare_pass(self) -> None:
        self.passes_prepared += 1

    def attempt(self, obj: ImportObject) -> AttemptResult:
        if obj.name in self.crash:
            raise RuntimeError("boom")
        if obj.name in self.broken:
            return AttemptResult(outcome=AttemptOutcome.CONVERSION_ERROR, error="syntax error", sqlstate="42601")
        with self._lock:
            missing = sorted(self.depends.get(obj.name, set()) - self.created)
        if missing:
            return AttemptResult(
                outcome=AttemptOutcome.MISSING_DEPENDENCY,
                error=f'relation "{missing[0]}" does not exist',
                sqlstate="42P01",
            )
        with self._lock:
            self.created.add(obj.name)
        if obj.name in self.assisted:
            return AttemptResult(outcome=AttemptOutcome.ASSISTED_SUCCESS)
        return AttemptResult(outcome=AttemptOutcome.IMPORTED)


def _batch(names, kind=BatchKind.QUERY):
    return ImportBatch(objects=tuple(ImportObject(name=n, kind=kind) for n in names))


def _chain(length):
    """q0 -> q1 -> ... -> q{length-1}, listed dependents first."""
    names = [f"q{i}" for i in range(length)]
    depends = {names[i]: [names[i + 1]] for i in range(length - 1)}
    return names, depends


class TestPasses:

    def test_dependent_listed_first_imports_in_pass_two(self):
        created: Set[str] = set()
        importer = GraphImporter(BatchKind.QUERY, {"A": ["T"]}, created)
        summary = ImportOrchestrator({BatchKind.QUERY: importer}).run(_batch(["A", "T"]))

        assert summary.report_for("T").pass_number == 1
        report = summary.report_for("A")
        assert report.status is ImportStatus.IMPORTED
        assert report.pass_number == 2
        assert summary.passes == ((BatchKind.QUERY, 2),)
        assert [(a.object_name, a.pass_number, a.outcome) for a in summary.attempts] == [
            ("A", 1, AttemptOutcome.MISSING_DEPENDENCY),
            ("T", 1, AttemptOutcome.IMPORTED),
            ("A", 2, AttemptOutcome.IMPORTED),
        ]
        assert summary.ok

    def test_reverse_chain_of_fifty_imports_fully(self):
        names, depends = _chain(50)
        importer = GraphImporter(BatchKind.QUERY, depends, set())
        summary = ImportOrchestrator({BatchKind.QUERY: importer}, max_passes=50).run(_batch(names))

        assert len(summary.imported) == 50
        assert summary.passes == ((BatchKind.QUERY, 50),)

    def test_pass_cap_leaves_the_rest_unresolved(self):
        names, depends = _chain(50)
        importer = GraphImporter(BatchKind.QUERY, depends, set())
        summary = ImportOrchestrator({BatchKind.QUERY: importer}).run(_batch(names))

        assert DEFAULT_MAX_PASSES == 20
        assert len(summary.imported) == 20
        assert len(summary.unresolved) == 30
        assert all(r.pass_number == 20 for r in summary.unresolved)
        assert summary.report_for("q0").error == 'relation "q1" does not exist'
        assert not summary.ok

    def test_mutual_dependency_stops_after_a_pass_without_progress(self):
        importer = GraphImporter(BatchKind.QUERY, {"A": ["B"], "B": ["A"]}, set())
        summary = ImportOrchestrator({BatchKind.QUERY: importer}).run(_batch(["A", "B"]))

        assert [r.name for r in summary.unresolved] == ["A", "B"]
        assert len(summary.attempts) == 2
        assert summary.passes == ((BatchKind.QUERY, 1),)

    def test_prepare_pass_runs_once_per_pass(self):
        importer = GraphImporter(BatchKind.QUERY, {"A": ["T"]}, set())
        ImportOrchestrator({BatchKind.QUERY: importer}).run(_batch(["A", "T"]))
        assert importer.passes_prepared == 2

    def test_max_passes_must_be_positive(self):
        with pytest.raises(ValueError):
            ImportOrchestrator({}, max_passes=0)


class TestOutcomes:

    def test_conversion_error_is_not_retried(self):
        importer = GraphImporter(BatchKind.QUERY, {"A": ["T"]}, set(), broken=["B"])
        summary = ImportOrchestrator({BatchKind.QUERY: importer}).run(_batch(["A", "B", "T"]))

        report = summary.report_for("B")
        assert report.status is ImportStatus.NEEDS_REVIEW
        assert report.sqlstate == "42601"
        assert [a.object_name for a in summary.attempts].count("B") == 1

    def test_assisted_success(self):
        importer = GraphImporter(BatchKind.QUERY, {}, set(), assisted=["A"])
        summary = ImportOrchestrator({BatchKind.QUERY: importer}).run(_batch(["A"]))
        assert summary.report_for("A").status is ImportStatus.ASSISTED
        assert summary.ok

    def test_importer_crash_needs_review(self):
        importer = GraphImporter(BatchKind.QUERY, {}, set(), crash=["A"])
        summary = ImportOrchestrator({BatchKind.QUERY: importer}).run(_batch(["A", "B"]))
        assert summary.report_for("A").status is ImportStatus.NEEDS_REVIEW
        assert summary.report_for("A").error == "importer crashed: boom"
        assert summary.report_for("B").status is ImportStatus.IMPORTED

    def test_missing_importer_needs_review(self):
        summary = ImportOrchestrator({}).run(_batch(["F"], kind=BatchKind.FORM))
        report = summary.report_for("F")
        assert report.status is ImportStatus.NEEDS_REVIEW
        assert report.pass_number == 0


class TestKinds:

    def test_kinds_run_in_order_with_shared_state(self):
        created: Set[str] = set()
        importers = {
            BatchKind.TABLE: GraphImporter(BatchKind.TABLE, {}, created),
            BatchKind.QUERY: GraphImporter(BatchKind.QUERY, {"Q": ["T"]}, created),
        }
        batch = ImportBatch(objects=(
            ImportObject("Q", BatchKind.QUERY),
            ImportObject("T", BatchKind.TABLE),
        ))
        summary = ImportOrchestrator(importers).run(batch)

        assert [r.name for r in summary.reports] == ["T", "Q"]
        assert summary.report_for("Q").pass_number == 1
        assert summary.passes == ((BatchKind.TABLE, 1), (BatchKind.QUERY, 1))


def test_concurrent_workers_keep_batch_order():
    names, depends = _chain(6)
    importer = GraphImporter(BatchKind.QUERY, depends, set())
    summary = ImportOrchestrator({BatchKind.QUERY: importer}, workers=4).run(_batch(names))

    assert len(summary.imported) == 6
    first_pass = [a.object_name for a in summary.attempts if a.pass_number == 1]
    assert first_pass == names


def test_batch_progress_is_immutable():
    progress = BatchProgress()
    attempt = ImportAttempt("A", BatchKind.QUERY, 1, AttemptOutcome.IMPORTED)
    updated = progress.with_attempt(attempt)
    assert progress.attempts == ()
    assert updated.attempts == (attempt,)


def test_concurrent_form_imports_keep_every_binding():
    mapping = ControlMapping()
    forms = [f"frmForm{i}" for i in range(24)]
    batch = ImportBatch(objects=tuple(
        ImportObject(
            name=form,
            kind=BatchKind.FORM,
            definition={
                "record-source": "Orders",
                "detail": {"controls": [{"name": f"txtField{n}", "field": f"Field{n}"} for n in range(40)]},
            },
        )
        for form in forms
    ))

    summary = ImportOrchestrator({BatchKind.FORM: FormImporter(mapping)}, workers=8).run(batch)

    assert len(summary.imported) == len(forms)
    assert len(mapping) == len(forms) * 40
    assert len(mapping.bindings_for_column("orders", "field7")) == len(forms)
