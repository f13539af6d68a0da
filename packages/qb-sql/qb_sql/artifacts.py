"""Persist import results: a run directory with summary.json and per-object files.

Layout::

    <root>/run_YYYYMMDD_HHMMSS/
        summary.json
        <kind>/<object_name>/
            ddl.sql
            report.json
            corrected.sql      (only when a correction was attempted)

Objects of different kinds may share a name. Distinct names that sanitize
to the same directory (``Order Details``, ``order_details``) get a numeric
suffix in the order they are saved.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from .conversion.names import sanitize_name
from .schemas import ImportSummary, ObjectReport

logger = logging.getLogger(__name__)


@dataclass
class StoredObject:
    report_path: str
    ddl_path: str
    corrected_path: Optional[str] = None


class ArtifactStore:
    """Writes the audit trail of one import run."""

    def __init__(self, run_dir: Path):
        self.run_dir = Path(run_dir)
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self._owners: Dict[Path, str] = {}

    @classmethod
    def new_run(cls, root: str | Path) -> "ArtifactStore":
        """Create ``root/run_<timestamp>/``."""
        run_id = datetime.now().strftime("run_%Y%m%d_%H%M%S")
        return cls(Path(root) / run_id)

    def object_dir(self, report: ObjectReport) -> Path:
        """Directory for ``report``; stable for repeated saves of the same object."""
        base = self.run_dir / report.kind.value / (sanitize_name(report.name) or "unnamed")
        odir, n = base, 1
        while self._owners.setdefault(odir, report.name) != report.name:
            n += 1
            odir = base.with_name(f"{base.name}_{n}")
        return odir

    def save_object(self, report: ObjectReport) -> StoredObject:
        odir = self.object_dir(report)
        odir.mkdir(parents=True, exist_ok=True)

        report_path = odir / "report.json"
        ddl_path = odir / "ddl.sql"
        report_path.write_text(json.dumps(report.to_dict(), indent=2))
        ddl_path.write_text(report.ddl or report.failed_sql or "")

        corrected_path = None
        if report.corrected_sql:
            corrected = odir / "corrected.sql"
            corrected.write_text(report.corrected_sql)
            corrected_path = str(corrected)

        return StoredObject(
            report_path=str(report_path),
            ddl_path=str(ddl_path),
            corrected_path=corrected_path,
        )

    def save_summary(self, summary: ImportSummary) -> Path:
        """Write summary.json plus one directory per object."""
        for report in summary.reports:
            self.save_object(report)
        path = self.run_dir / "summary.json"
        data = summary.to_dict()
        data["finished_at"] = datetime.now().isoformat()
        path.write_text(json.dumps(data, indent=2))
        logger.info("Import artifacts written to %s", self.run_dir)
        return path
