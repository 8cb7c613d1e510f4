"""
Version Store — published snapshots of a stage's form.

Versions for every stage of a category live in one document
(``formVersions_<categoryId>``). History is append-only: publish adds a
version, rollback only moves the ``is_active`` flag.

Invariants per stage:
    - version numbers start at 1 and strictly increase, never reused
    - at most one version has is_active=True
    - a version's field list is a deep copy and never follows later edits
"""

from __future__ import annotations

import logging

from stageforms.core.exceptions import EmptyFormError, NotFoundError
from stageforms.models.form_schema import FormVersion, Stage, copy_fields, new_id
from stageforms.services import audit_events
from stageforms.services.audit_events import AuditNotifier, NullAuditNotifier
from stageforms.services.repository import FormRepository
from stageforms.services.stage_service import StageService

logger = logging.getLogger(__name__)


def _activate(versions: list[FormVersion], stage_id: str, version_id: str | None) -> None:
    """Make ``version_id`` the single active version of ``stage_id`` (None clears all)."""
    for version in versions:
        if version.stage_id == stage_id:
            version.is_active = version.id == version_id


class VersionService:
    """Publish, list and roll back form versions."""

    def __init__(
        self,
        repository: FormRepository,
        stages: StageService,
        notifier: AuditNotifier | None = None,
    ):
        self._repository = repository
        self._stages = stages
        self._notifier = notifier or NullAuditNotifier()

    def publish(
        self,
        category_id: str,
        stage: Stage,
        published_by: str | None = None,
    ) -> FormVersion:
        """Snapshot the stage's current fields as the next active version.

        The same snapshot is written onto the persisted stage so the live
        schema and the published one agree. Both documents are stored in one
        batch: if either changed since this session read it, neither is
        written.

        Raises:
            EmptyFormError: If the stage has no fields; nothing is written.
            NotFoundError: If the category or stage does not exist.
            ConflictError: If another session saved either document first.
        """
        fields = copy_fields(stage.form_fields)
        if not fields:
            raise EmptyFormError(stage.id, stage.name)
        self._stages.get_stage(category_id, stage.id)

        with self._repository.batch():
            versions = self._repository.load_versions(category_id)
            numbers = [v.version for v in versions if v.stage_id == stage.id]
            next_version = max(numbers) + 1 if numbers else 1

            version = FormVersion(
                id=new_id("version"),
                version=next_version,
                stage_id=stage.id,
                stage_name=stage.name,
                form_fields=fields,
                published_by=published_by,
            )
            versions.append(version)
            _activate(versions, stage.id, version.id)
            self._repository.save_versions(category_id, versions)
            self._stages.save_stage_fields(category_id, stage.id, fields, audit=False)

        self._notifier.notify(audit_events.FORM_PUBLISHED, category_id, version.id)
        logger.info(
            "Form published category=%s stage=%s version=%s",
            category_id, stage.id, next_version,
        )
        return version

    def list_versions(self, category_id: str, stage_id: str) -> list[FormVersion]:
        """Versions of one stage, most recent first."""
        versions = [
            v for v in self._repository.load_versions(category_id) if v.stage_id == str(stage_id)
        ]
        return sorted(versions, key=lambda v: v.version, reverse=True)

    def get_active_version(self, category_id: str, stage_id: str) -> FormVersion | None:
        return next(
            (v for v in self.list_versions(category_id, stage_id) if v.is_active), None
        )

    def rollback(self, category_id: str, stage: Stage, version_id: str) -> FormVersion:
        """Load a published snapshot into the stage draft and mark it active.

        No version is created and the persisted stage is left alone; the
        caller commits the draft explicitly.

        Raises:
            NotFoundError: If the version does not exist for this stage.
        """
        versions = self._repository.load_versions(category_id)
        target = next(
            (v for v in versions if v.id == version_id and v.stage_id == stage.id), None
        )
        if target is None:
            raise NotFoundError("FormVersion", version_id, scope=f"stage={stage.id}")

        _activate(versions, stage.id, target.id)
        self._repository.save_versions(category_id, versions)

        stage.form_fields = copy_fields(target.form_fields)
        self._notifier.notify(audit_events.FORM_ROLLED_BACK, category_id, target.id)
        logger.info(
            "Form rolled back category=%s stage=%s version=%s",
            category_id, stage.id, target.version,
        )
        return target
