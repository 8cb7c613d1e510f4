"""
Audit event hand-off.

The engine does not format or store audit records; it only reports what
happened as ``{action, category, resourceId, timestamp}`` to whatever
collaborator is plugged in. The default notifier writes a structured log
line (``event_type`` extra) so the JSON log formatter picks it up.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from stageforms.models.form_schema import utcnow_iso

logger = logging.getLogger(__name__)

# Action names emitted by the stores
STAGE_ADDED = "stage_added"
STAGE_RENAMED = "stage_renamed"
STAGE_DELETED = "stage_deleted"
STAGE_MOVED = "stage_moved"
STAGES_REORDERED = "stages_reordered"
STAGE_FORM_SAVED = "stage_form_saved"
CATEGORY_CREATED = "category_created"
CATEGORY_UPDATED = "category_updated"
FORM_PUBLISHED = "form_published"
FORM_ROLLED_BACK = "form_rolled_back"
REGISTRATION_STEPS_SAVED = "registration_steps_saved"
REGISTRATION_STEP_PUBLISHED = "registration_step_published"
REGISTRATION_STEP_ROLLED_BACK = "registration_step_rolled_back"
REGISTRATION_FORM_PUBLISHED = "registration_form_published"
REGISTRATION_FORM_ROLLED_BACK = "registration_form_rolled_back"


@dataclass(frozen=True)
class AuditEvent:
    action: str
    category: str
    resource_id: str
    timestamp: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "category": self.category,
            "resourceId": self.resource_id,
            "timestamp": self.timestamp,
        }


class AuditNotifier(ABC):
    """Base notifier: builds the event and hands it to ``emit``."""

    def notify(self, action: str, category_id: str, resource_id: str) -> AuditEvent:
        event = AuditEvent(action=action, category=str(category_id), resource_id=str(resource_id))
        self.emit(event)
        return event

    @abstractmethod
    def emit(self, event: AuditEvent) -> None:
        """Deliver one event."""


class LoggingAuditNotifier(AuditNotifier):
    def emit(self, event: AuditEvent) -> None:
        logger.info(
            "audit %s category=%s resource=%s",
            event.action,
            event.category,
            event.resource_id,
            extra={"event_type": event.action},
        )


class NullAuditNotifier(AuditNotifier):
    """Used when AUDIT_EVENTS_ENABLED is off."""

    def emit(self, event: AuditEvent) -> None:
        return None
