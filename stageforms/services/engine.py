"""
Wiring of the repository, stores and audit notifier.

Usage:
    from stageforms.services.engine import engine_from_app

    engine = engine_from_app()          # inside an app context
    session = engine.open_session("2")
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from stageforms.services.audit_events import AuditNotifier, LoggingAuditNotifier, NullAuditNotifier
from stageforms.services.form_builder_session import FormBuilderSession
from stageforms.services.registration_service import RegistrationService
from stageforms.services.repository import (
    FormRepository,
    KeyValueBackend,
    MemoryKeyValueBackend,
    SqlKeyValueBackend,
)
from stageforms.services.stage_service import StageService
from stageforms.services.version_service import VersionService

_MEMORY_BACKEND_EXT = "stageforms.memory_backend"


@dataclass
class FormEngine:
    """One editor session's view of the stores."""
    repository: FormRepository
    stages: StageService
    versions: VersionService
    registration: RegistrationService

    def open_session(self, category_id: str, edit_mode: bool = True) -> FormBuilderSession:
        """Start the admin workflow on a category, creating it on first reference."""
        category = self.stages.ensure_category(category_id)
        return FormBuilderSession(category.id, self.stages, self.versions, edit_mode=edit_mode)


def build_engine(
    backend: KeyValueBackend,
    notifier: AuditNotifier | None = None,
    seed_defaults: bool = True,
) -> FormEngine:
    repository = FormRepository(backend)
    stages = StageService(repository, notifier=notifier, seed_defaults=seed_defaults)
    versions = VersionService(repository, stages, notifier=notifier)
    registration = RegistrationService(repository, notifier=notifier)
    return FormEngine(
        repository=repository,
        stages=stages,
        versions=versions,
        registration=registration,
    )


def _backend_for(app) -> KeyValueBackend:
    kind = app.config.get("FORM_STORE_BACKEND", "sql")
    if kind == "memory":
        # Shared per app so every engine sees the same documents
        return app.extensions.setdefault(_MEMORY_BACKEND_EXT, MemoryKeyValueBackend())
    if kind == "sql":
        return SqlKeyValueBackend()
    raise RuntimeError(f"Unknown FORM_STORE_BACKEND {kind!r} (expected 'sql' or 'memory')")


def engine_from_app(app=None) -> FormEngine:
    """Build an engine from the Flask config of ``app`` (default: current_app)."""
    app = app or current_app
    if app.config.get("AUDIT_EVENTS_ENABLED", True):
        notifier = LoggingAuditNotifier()
    else:
        notifier = NullAuditNotifier()
    return build_engine(
        _backend_for(app),
        notifier=notifier,
        seed_defaults=app.config.get("SEED_DEFAULT_CATEGORIES", True),
    )
