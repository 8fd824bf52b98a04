"""
Service wiring for the API routes.

One ``Services`` instance per process, built lazily on first request so that
importing the routers never reaches out to GitHub or the model proxy. It
starts empty: clients store a token through the credentials routes and
register repositories through ``POST /api/repos`` before syncing.
Tests replace ``get_services`` through ``app.dependency_overrides``.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from archlog.ai_core.extraction.decision_extractor import DecisionExtractor
from archlog.config import Settings, get_settings
from archlog.services.candidates import CandidateService
from archlog.services.cost_governor import CostGovernor
from archlog.services.credential_store import CredentialVault
from archlog.services.exporter import DecisionExporter
from archlog.services.extraction import ExtractionService
from archlog.services.store import InMemoryStore, Store
from archlog.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: Store
    vault: CredentialVault
    governor: CostGovernor
    extraction: ExtractionService
    orchestrator: SyncOrchestrator
    candidates: CandidateService
    exporter: DecisionExporter


def build_services(
    extractor: DecisionExtractor,
    store: Optional[Store] = None,
    vault: Optional[CredentialVault] = None,
    settings: Optional[Settings] = None,
    **orchestrator_kwargs,
) -> Services:
    """Wire every service around one store and one vault."""
    settings = settings or get_settings()
    store = store or InMemoryStore()
    vault = vault or CredentialVault()

    governor = CostGovernor(store, daily_limit=settings.daily_extraction_limit)
    extraction = ExtractionService(
        store, extractor, governor, batch_size=settings.extraction_batch_size
    )
    orchestrator = SyncOrchestrator(
        store, vault, extraction=extraction, settings=settings, **orchestrator_kwargs
    )
    return Services(
        store=store,
        vault=vault,
        governor=governor,
        extraction=extraction,
        orchestrator=orchestrator,
        candidates=CandidateService(store, extraction, governor),
        exporter=DecisionExporter(store),
    )


# Lazy initialization to avoid import-time proxy client setup
_services: Optional[Services] = None


def get_services() -> Services:
    """Get the process-wide Services instance with lazy initialization."""
    global _services
    if _services is None:
        from archlog.ai_core.extraction.llm_factory import create_decision_extractor

        _services = build_services(create_decision_extractor())
        logger.info("Services initialized with in-memory store")
    return _services
