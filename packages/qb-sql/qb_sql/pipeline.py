"""Import pipeline: wires engine, converter, mapping, corrector and importers.

Usage:
    from qb_sql.execution import PostgresConfig
    from qb_sql.pipeline import ImportPipeline

    pipeline = ImportPipeline(PostgresConfig.from_env(), max_passes=30)
    summary = pipeline.run(ImportBatch.from_manifest(manifest))
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from qb_shared.config import get_settings

from .catalog import load_catalog
from .conversion.converter import QueryConverter
from .execution.engine import ExecutionEngine
from .execution.factory import PostgresConfig
from .fallback import FallbackCorrector, LLMCorrectionService
from .fallback.service import CorrectionService
from .importers import BaseImporter, FormImporter, QueryImporter, StatementImporter
from .mapping import ControlMapping, ControlMappingRepository
from .orchestrator import ImportOrchestrator
from .schemas import BatchKind, ImportBatch, ImportSummary

logger = logging.getLogger(__name__)


class ImportPipeline:
    """One configured import run against a target database.

    Args:
        config: Target database connection; ``config.schema`` is the target schema.
        max_passes: Pass cap per kind (default: ``QB_MAX_IMPORT_PASSES``).
        workers: Concurrent attempts per pass (default: ``QB_IMPORT_WORKERS``).
        use_fallback: Route conversion errors to the correction service.
        service: Correction service override (default: configured LLM provider).
        persist_mapping: Load and store control bindings in the mapping table.
    """

    def __init__(
        self,
        config: PostgresConfig,
        max_passes: Optional[int] = None,
        workers: Optional[int] = None,
        use_fallback: bool = True,
        service: Optional[CorrectionService] = None,
        persist_mapping: bool = True,
    ):
        settings = get_settings()
        self.config = config
        self.schema = config.schema
        self.max_passes = max_passes or settings.max_import_passes
        self.workers = workers or settings.import_workers
        self.timeout = settings.correction_timeout_seconds
        self.session_setting = settings.session_setting
        self.use_fallback = use_fallback
        self.service = service
        self.persist_mapping = persist_mapping

    def _service(self) -> Optional[CorrectionService]:
        if not self.use_fallback:
            return None
        if self.service is not None:
            return self.service
        service = LLMCorrectionService.from_settings()
        if service is None:
            logger.info("No correction service configured; conversion errors will need review")
        return service

    def _load_mapping(self, repository: Optional[ControlMappingRepository]) -> ControlMapping:
        if repository is None:
            return ControlMapping()
        try:
            mapping = repository.load()
        except Exception as e:
            logger.warning("Could not load control mapping (run `qb setup` first?): %s", e)
            return ControlMapping()
        logger.info("Loaded %d control bindings", len(mapping))
        return mapping

    def build(self, engine: ExecutionEngine) -> ImportOrchestrator:
        executor = engine.shared_executor
        repository = ControlMappingRepository(executor) if self.persist_mapping else None
        mapping = self._load_mapping(repository)

        def catalog():
            return load_catalog(executor, self.schema)

        converter = QueryConverter(
            schema=self.schema,
            mapping=mapping,
            session_setting=self.session_setting,
        )
        service = self._service()
        corrector = None
        if service is not None:
            corrector = FallbackCorrector(
                engine,
                service=service,
                catalog=catalog,
                mapping=mapping,
                timeout=self.timeout,
            )
        importers: Dict[BatchKind, BaseImporter] = {
            BatchKind.TABLE: StatementImporter(engine, BatchKind.TABLE),
            BatchKind.FORM: FormImporter(mapping, repository, BatchKind.FORM),
            BatchKind.REPORT: FormImporter(mapping, repository, BatchKind.REPORT),
            BatchKind.FUNCTION_STUB: StatementImporter(engine, BatchKind.FUNCTION_STUB),
            BatchKind.QUERY: QueryImporter(engine, converter, corrector, catalog_loader=catalog),
        }
        return ImportOrchestrator(importers, max_passes=self.max_passes, workers=self.workers)

    def run(self, batch: ImportBatch) -> ImportSummary:
        with ExecutionEngine(self.config.get_executor) as engine:
            return self.build(engine).run(batch)
