"""
Stage Store — ordered workflow stages per project category.

Owns the ``stages`` list embedded in each ProjectCategory. Every mutation
re-normalises the numbering to 1..N, refreshes ``updated_at``, persists the
category through the injected repository and reports an audit event.

Also carries the small category catalog (list/create/update and the
lazily-created default category) because stages live inside categories.

Usage:
    service = StageService(FormRepository(SqlKeyValueBackend()))
    service.add_stage("2", "Validation")
    service.reorder_stages("2", from_index=5, to_index=0)
"""

from __future__ import annotations

import logging

from stageforms.core.exceptions import NotFoundError, ValidationError
from stageforms.models.form_schema import FormField, ProjectCategory, Stage, copy_fields, new_id
from stageforms.services import audit_events
from stageforms.services.audit_events import AuditNotifier, NullAuditNotifier
from stageforms.services.ordering import (
    DIRECTIONS,
    relocate,
    renumber,
    sort_by_order,
    swap_with_neighbor,
)
from stageforms.services.repository import FormRepository

logger = logging.getLogger(__name__)

_MAX_NAME_LEN = 255

# ---------------------------------------------------------------------------
# Default catalog
# ---------------------------------------------------------------------------

_INFRASTRUCTURE_STAGES = ("Proposal", "Procurement", "Implementation", "Completed", "Inventory")
_MACHINERY_STAGES = ("Proposal", "Procurement", "For Delivery", "Delivered", "Inventory")
_GENERIC_STAGES = ("Draft", "Proposal", "Procurement", "Implementation", "Completed")

DEFAULT_CATEGORIES = (
    ("1", "FMR", "Farm-to-Market Road"),
    ("2", "Infrastructure", "Infrastructure Projects"),
    ("3", "Machinery", "Machinery and Equipment"),
    ("4", "Project Package", "Project Package"),
)


def default_stages(type_name: str) -> list[Stage]:
    """Stage template for a category, picked by its name."""
    name = type_name.lower()
    if "infrastructure" in name or name == "fmr":
        names = _INFRASTRUCTURE_STAGES
    elif "machinery" in name:
        names = _MACHINERY_STAGES
    else:
        names = _GENERIC_STAGES
    return [Stage(id=str(i), name=n, order=i) for i, n in enumerate(names, start=1)]


def clean_name(value: str | None, label: str = "name") -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"{label} is required", details={label: "blank"})
    if len(name) > _MAX_NAME_LEN:
        raise ValidationError(
            f"{label} must be <= {_MAX_NAME_LEN} characters", details={label: "too long"}
        )
    return name


class StageService:
    """Add, rename, delete, move and reorder the stages of a category."""

    def __init__(
        self,
        repository: FormRepository,
        notifier: AuditNotifier | None = None,
        seed_defaults: bool = True,
    ):
        self._repository = repository
        self._notifier = notifier or NullAuditNotifier()
        self._seed_defaults = seed_defaults

    # ── Internal helpers ─────────────────────────────────────────────────

    def _get_stage(self, category: ProjectCategory, stage_id: str) -> Stage:
        stage = category.find_stage(str(stage_id))
        if stage is None:
            raise NotFoundError("Stage", str(stage_id), scope=f"category={category.id}")
        return stage

    def _commit(
        self,
        category: ProjectCategory,
        stages: list[Stage],
        action: str,
        resource_id: str,
        audit: bool = True,
    ):
        category.stages = renumber(stages)
        category.touch()
        self._repository.put_category(category)
        if audit:
            self._notifier.notify(action, category.id, resource_id)
        logger.info("%s category=%s resource=%s", action, category.id, resource_id)
        return category.stages

    # ── Category catalog ─────────────────────────────────────────────────

    def list_categories(self) -> list[ProjectCategory]:
        """Return every category, seeding the default catalog into an empty store."""
        categories = self._repository.load_categories()
        if not categories and self._seed_defaults:
            categories = [
                ProjectCategory(id=cid, name=name, description=desc, stages=default_stages(name))
                for cid, name, desc in DEFAULT_CATEGORIES
            ]
            self._repository.save_categories(categories)
            logger.info("Seeded %s default project categories", len(categories))
        return categories

    def get_category(self, category_id: str) -> ProjectCategory:
        return self._repository.get_category(category_id)

    def ensure_category(self, category_id: str) -> ProjectCategory:
        """Fetch a category, creating a default one on first reference."""
        self.list_categories()
        category = self._repository.find_category(category_id)
        if category is not None:
            return category

        name = f"Project Type {category_id}"
        category = ProjectCategory(
            id=str(category_id),
            name=name,
            description="Default project type",
            stages=default_stages("Default"),
        )
        self._repository.put_category(category)
        self._notifier.notify(audit_events.CATEGORY_CREATED, category.id, category.id)
        logger.info("Default category created id=%s", category.id)
        return category

    def create_category(self, name: str, description: str | None = None) -> ProjectCategory:
        category = ProjectCategory(
            id=new_id(),
            name=clean_name(name),
            description=(description or "").strip() or None,
        )
        self._repository.put_category(category)
        self._notifier.notify(audit_events.CATEGORY_CREATED, category.id, category.id)
        logger.info("ProjectCategory created id=%s", category.id)
        return category

    def update_category(
        self,
        category_id: str,
        name: str | None = None,
        description: str | None = None,
    ) -> ProjectCategory:
        category = self._repository.get_category(category_id)
        if name is not None:
            category.name = clean_name(name)
        if description is not None:
            category.description = description.strip() or None
        category.touch()
        self._repository.put_category(category)
        self._notifier.notify(audit_events.CATEGORY_UPDATED, category.id, category.id)
        logger.info("ProjectCategory updated id=%s", category.id)
        return category

    # ── Stages ───────────────────────────────────────────────────────────

    def list_stages(self, category_id: str) -> list[Stage]:
        return sort_by_order(self._repository.get_category(category_id).stages)

    def get_stage(self, category_id: str, stage_id: str) -> Stage:
        return self._get_stage(self._repository.get_category(category_id), stage_id)

    def add_stage(self, category_id: str, name: str) -> Stage:
        """Append a stage with ``order = N + 1``."""
        name = clean_name(name)
        category = self._repository.get_category(category_id)
        stages = sort_by_order(category.stages)
        stage = Stage(id=new_id(), name=name, order=len(stages) + 1)
        stages.append(stage)
        self._commit(category, stages, audit_events.STAGE_ADDED, stage.id)
        return stage

    def rename_stage(self, category_id: str, stage_id: str, name: str) -> Stage:
        name = clean_name(name)
        category = self._repository.get_category(category_id)
        stage = self._get_stage(category, stage_id)
        stage.name = name
        self._commit(category, sort_by_order(category.stages), audit_events.STAGE_RENAMED, stage.id)
        return stage

    def delete_stage(self, category_id: str, stage_id: str) -> list[Stage]:
        """Remove a stage and close the gap: survivors are renumbered 1..N-1."""
        category = self._repository.get_category(category_id)
        self._get_stage(category, stage_id)
        remaining = [s for s in sort_by_order(category.stages) if s.id != str(stage_id)]
        return self._commit(category, remaining, audit_events.STAGE_DELETED, str(stage_id))

    def move_stage(self, category_id: str, stage_id: str, direction: str) -> list[Stage]:
        """Swap a stage with its neighbour; the first cannot go up nor the last down."""
        if direction not in DIRECTIONS:
            raise ValidationError(
                f"direction must be one of: {', '.join(DIRECTIONS)}",
                details={"direction": direction},
            )
        category = self._repository.get_category(category_id)
        stage = self._get_stage(category, stage_id)
        stages = sort_by_order(category.stages)
        index = stages.index(stage)
        moved = swap_with_neighbor(stages, index, direction)
        if moved == stages:
            return stages
        return self._commit(category, moved, audit_events.STAGE_MOVED, stage.id)

    def reorder_stages(self, category_id: str, from_index: int, to_index: int) -> list[Stage]:
        """Drag-and-drop relocation by zero-based position in the ordered list."""
        category = self._repository.get_category(category_id)
        stages = sort_by_order(category.stages)
        try:
            reordered = relocate(stages, from_index, to_index)
        except IndexError as exc:
            raise ValidationError(
                str(exc), details={"from_index": from_index, "to_index": to_index}
            ) from exc
        if from_index == to_index:
            return stages
        return self._commit(
            category, reordered, audit_events.STAGES_REORDERED, stages[from_index].id
        )

    def save_stage_fields(
        self,
        category_id: str,
        stage_id: str,
        fields: list[FormField] | None,
        audit: bool = True,
    ) -> Stage:
        """Replace a stage's live field list with a copy of ``fields``.

        ``audit=False`` skips the event when the caller reports the change
        itself, e.g. as part of a publish.
        """
        category = self._repository.get_category(category_id)
        stage = self._get_stage(category, stage_id)
        stage.form_fields = copy_fields(fields)
        self._commit(
            category,
            sort_by_order(category.stages),
            audit_events.STAGE_FORM_SAVED,
            stage.id,
            audit=audit,
        )
        return stage
