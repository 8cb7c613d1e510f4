"""
Form Builder Session — the admin workflow over one project category.

State machine:

    browsing ──configure──▶ configuring_stage ──save / cancel──▶ browsing
                             │   ▲      │   ▲
                     preview │   │ close│   │ close_versions / rollback
                             ▼   │      ▼   │
                         previewing    viewing_versions

``publish`` and field edits stay in configuring_stage; stage-list edits
happen while browsing. The draft (an editable copy of the configured stage)
is only written to the Stage Store on ``save``; ``cancel`` throws it away.

Usage:
    session = engine.open_session("2")
    session.configure(stage_id)
    session.add_field("text")
    session.publish(published_by="admin")
    session.save()
"""

from __future__ import annotations

import copy
import logging
from enum import Enum

from stageforms.core.exceptions import SessionStateError
from stageforms.models.form_schema import FormField, FormVersion, Stage
from stageforms.services import form_field_service
from stageforms.services.ordering import ItemRect
from stageforms.services.stage_service import StageService
from stageforms.services.submission_validation import validate_submission
from stageforms.services.version_service import VersionService

logger = logging.getLogger(__name__)


class BuilderState(str, Enum):
    BROWSING = "browsing"
    CONFIGURING_STAGE = "configuring_stage"
    PREVIEWING = "previewing"
    VIEWING_VERSIONS = "viewing_versions"


_BROWSING = BuilderState.BROWSING.value
_CONFIGURING = BuilderState.CONFIGURING_STAGE.value
_PREVIEWING = BuilderState.PREVIEWING.value
_VERSIONS = BuilderState.VIEWING_VERSIONS.value

SESSION_TRANSITIONS = {
    "edit_stages":    {"from": [_BROWSING], "to": _BROWSING},
    "configure":      {"from": [_BROWSING], "to": _CONFIGURING},
    "edit_fields":    {"from": [_CONFIGURING], "to": _CONFIGURING},
    "publish":        {"from": [_CONFIGURING], "to": _CONFIGURING},
    "save":           {"from": [_CONFIGURING], "to": _BROWSING},
    "cancel":         {"from": [_CONFIGURING], "to": _BROWSING},
    "preview":        {"from": [_CONFIGURING], "to": _PREVIEWING},
    "validate_preview": {"from": [_PREVIEWING], "to": _PREVIEWING},
    "close_preview":  {"from": [_PREVIEWING], "to": _CONFIGURING},
    "view_versions":  {"from": [_CONFIGURING], "to": _VERSIONS},
    "close_versions": {"from": [_VERSIONS], "to": _CONFIGURING},
    "rollback":       {"from": [_VERSIONS], "to": _CONFIGURING},
}


class FormBuilderSession:
    """One administrator's walk through a category's stages and forms."""

    def __init__(
        self,
        category_id: str,
        stages: StageService,
        versions: VersionService,
        edit_mode: bool = True,
    ):
        self.category_id = str(category_id)
        self.edit_mode = edit_mode
        self.state = BuilderState.BROWSING
        self.draft: Stage | None = None
        self._stages = stages
        self._versions = versions

    # ── State machine ────────────────────────────────────────────────────

    def validate_action(self, action: str) -> dict:
        """
        Check whether ``action`` is allowed right now.

        Returns:
            {"valid": bool, "state": str, "to": str|None, "reason": str|None}
        """
        state = self.state.value
        rule = SESSION_TRANSITIONS.get(action)
        if not rule:
            return {"valid": False, "state": state, "to": None,
                    "reason": f"Unknown action: {action}"}
        if not self.edit_mode:
            return {"valid": False, "state": state, "to": rule["to"],
                    "reason": "edit mode is off"}
        if state not in rule["from"]:
            return {"valid": False, "state": state, "to": rule["to"],
                    "reason": f"Cannot '{action}' from state '{state}'"}
        return {"valid": True, "state": state, "to": rule["to"], "reason": None}

    def _require(self, action: str) -> str:
        check = self.validate_action(action)
        if not check["valid"]:
            raise SessionStateError(action, check["state"], check["reason"])
        return check["to"]

    def _move_to(self, target: str, action: str) -> None:
        previous = self.state
        self.state = BuilderState(target)
        if previous != self.state:
            logger.debug(
                "Session category=%s %s: %s -> %s",
                self.category_id, action, previous.value, self.state.value,
            )

    # ── Browsing: stage list ─────────────────────────────────────────────

    def list_stages(self) -> list[Stage]:
        return self._stages.list_stages(self.category_id)

    def add_stage(self, name: str) -> Stage:
        self._require("edit_stages")
        return self._stages.add_stage(self.category_id, name)

    def rename_stage(self, stage_id: str, name: str) -> Stage:
        self._require("edit_stages")
        return self._stages.rename_stage(self.category_id, stage_id, name)

    def delete_stage(self, stage_id: str) -> list[Stage]:
        self._require("edit_stages")
        return self._stages.delete_stage(self.category_id, stage_id)

    def move_stage(self, stage_id: str, direction: str) -> list[Stage]:
        self._require("edit_stages")
        return self._stages.move_stage(self.category_id, stage_id, direction)

    def reorder_stages(self, from_index: int, to_index: int) -> dict:
        """Relocate a stage; also report where every stage sat before the move."""
        self._require("edit_stages")
        before = self._stages.list_stages(self.category_id)
        previous_positions = {stage.id: index for index, stage in enumerate(before)}
        stages = self._stages.reorder_stages(self.category_id, from_index, to_index)
        return {"stages": stages, "previous_positions": previous_positions}

    # ── Configuring a stage ──────────────────────────────────────────────

    def configure(self, stage_id: str) -> Stage:
        """Open a stage for field editing on a private copy."""
        target = self._require("configure")
        stage = copy.deepcopy(self._stages.get_stage(self.category_id, stage_id))
        if stage.form_fields is None:
            stage.form_fields = []
        self.draft = stage
        self._move_to(target, "configure")
        return stage

    def add_field(self, field_type) -> FormField:
        self._require("edit_fields")
        return form_field_service.add_field(self.draft, field_type)

    def update_field(self, field_id: str, updates: dict) -> FormField:
        self._require("edit_fields")
        return form_field_service.update_field(self.draft, field_id, updates)

    def delete_field(self, field_id: str) -> None:
        self._require("edit_fields")
        form_field_service.delete_field(self.draft, field_id)

    def reorder_field(
        self,
        field_id: str,
        drop_index: int,
        pointer_y: float,
        item_rect: ItemRect,
    ) -> list[FormField]:
        self._require("edit_fields")
        return form_field_service.reorder_field(
            self.draft, field_id, drop_index, pointer_y, item_rect
        )

    def publish(self, published_by: str | None = None) -> FormVersion:
        self._require("publish")
        return self._versions.publish(self.category_id, self.draft, published_by=published_by)

    def save(self) -> Stage:
        """Commit the draft (hand-edited or rolled back) into the Stage Store."""
        target = self._require("save")
        saved = self._stages.save_stage_fields(
            self.category_id, self.draft.id, self.draft.form_fields
        )
        self.draft = None
        self._move_to(target, "save")
        return saved

    def cancel(self) -> None:
        target = self._require("cancel")
        self.draft = None
        self._move_to(target, "cancel")

    # ── Preview ──────────────────────────────────────────────────────────

    def preview(self) -> list[dict]:
        """Read-only rendering data for the draft's fields."""
        target = self._require("preview")
        self._move_to(target, "preview")
        return [f.to_dict() for f in self.draft.form_fields or []]

    def validate_preview(self, data: dict) -> dict[str, str]:
        self._require("validate_preview")
        return validate_submission(self.draft.form_fields, data)

    def close_preview(self) -> None:
        self._move_to(self._require("close_preview"), "close_preview")

    # ── Version history ──────────────────────────────────────────────────

    def view_versions(self) -> list[FormVersion]:
        target = self._require("view_versions")
        versions = self._versions.list_versions(self.category_id, self.draft.id)
        self._move_to(target, "view_versions")
        return versions

    def close_versions(self) -> None:
        self._move_to(self._require("close_versions"), "close_versions")

    def rollback(self, version_id: str) -> FormVersion:
        """Load a published version into the draft; ``save`` makes it stick."""
        target = self._require("rollback")
        version = self._versions.rollback(self.category_id, self.draft, version_id)
        self._move_to(target, "rollback")
        return version
