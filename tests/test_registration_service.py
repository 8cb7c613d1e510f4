"""
Registration Form Store — default steps, step and field editing, per-step
and whole-form versions, audit events and stale-session publishing.
"""

import pytest

from stageforms.core.exceptions import (
    ConflictError,
    EmptyFormError,
    NotFoundError,
    ValidationError,
)
from stageforms.services import audit_events
from stageforms.services.engine import build_engine, engine_from_app
from stageforms.services.ordering import ItemRect
from stageforms.services.registration_service import default_registration_steps

RECT = ItemRect(top=0, height=40)
ABOVE = 10
BELOW = 30


@pytest.fixture()
def registration(engine, category):
    return engine.registration


def _ids(items):
    return [i.id for i in items]


def _names(steps):
    return [s.name for s in steps]


def _summary(versions):
    return [(v.version, v.is_active) for v in versions]


# ═══════════════════════════════════════════════════════════════
#  Default steps
# ═══════════════════════════════════════════════════════════════


class TestDefaultSteps:
    def test_template(self):
        steps = default_registration_steps()
        assert _names(steps) == [
            "Project Information", "Budget Source", "Location", "Document Upload",
        ]
        assert _ids(steps) == ["step-1", "step-2", "step-3", "step-4"]
        assert [len(s.form_fields) for s in steps] == [4, 9, 1, 8]
        documents = steps[3].form_fields
        assert [f.required for f in documents[-3:]] == [False, False, False]

    def test_created_on_first_listing(self, engine, registration):
        steps = registration.list_steps("1")
        assert _ids(steps) == ["step-1", "step-2", "step-3", "step-4"]

        stored = engine_from_app().stages.get_category("1")
        assert _ids(stored.registration_steps) == _ids(steps)
        assert len(stored.registration_form) == 22
        assert stored.registration_form[0].id == "field-project-classification"

    def test_existing_steps_kept(self, registration):
        registration.add_step("1", "Extra")
        assert _names(registration.list_steps("1"))[-1] == "Extra"

    def test_unknown_category(self, engine):
        with pytest.raises(NotFoundError):
            engine.registration.list_steps("nope")

    def test_stages_untouched(self, engine, registration):
        registration.list_steps("1")
        assert [s.name for s in engine.stages.list_stages("1")] == list("ABCDE")


# ═══════════════════════════════════════════════════════════════
#  Step operations
# ═══════════════════════════════════════════════════════════════


class TestSteps:
    def test_add_step_default_name(self, registration):
        step = registration.add_step("1")
        assert step.name == "Step 5"
        assert step.order == 5
        assert step.form_fields == []

    def test_add_step_blank_name(self, registration):
        with pytest.raises(ValidationError):
            registration.add_step("1", "  ")

    def test_rename(self, registration):
        assert registration.rename_step("1", "step-3", " Site ").name == "Site"
        assert registration.get_step("1", "step-3").name == "Site"

    def test_rename_unknown(self, registration):
        with pytest.raises(NotFoundError):
            registration.rename_step("1", "step-9", "X")

    def test_delete_renumbers_and_flattens(self, engine, registration):
        steps = registration.delete_step("1", "step-2")
        assert _ids(steps) == ["step-1", "step-3", "step-4"]
        assert [s.order for s in steps] == [1, 2, 3]
        form = engine.stages.get_category("1").registration_form
        assert "field-amount" not in _ids(form)

    def test_move(self, registration):
        steps = registration.move_step("1", "step-2", "up")
        assert _ids(steps)[:2] == ["step-2", "step-1"]
        assert [s.order for s in steps] == [1, 2, 3, 4]

    def test_move_last_down_is_noop(self, engine, registration):
        registration.list_steps("1")
        revision = engine.repository.revision("projectTypes")
        registration.move_step("1", "step-4", "down")
        assert engine.repository.revision("projectTypes") == revision

    def test_move_bad_direction(self, registration):
        with pytest.raises(ValidationError):
            registration.move_step("1", "step-1", "left")

    @pytest.mark.parametrize("from_index,to_index", [(i, j) for i in range(4) for j in range(4)])
    def test_reorder_every_pair(self, registration, from_index, to_index):
        before = _ids(registration.list_steps("1"))
        steps = registration.reorder_steps("1", from_index, to_index)
        expected = list(before)
        expected.insert(to_index, expected.pop(from_index))
        assert _ids(steps) == expected
        assert [s.order for s in steps] == [1, 2, 3, 4]

    def test_reorder_out_of_range(self, registration):
        with pytest.raises(ValidationError):
            registration.reorder_steps("1", 0, 4)

    def test_reorder_moves_flattened_fields(self, engine, registration):
        registration.reorder_steps("1", 2, 0)
        form = engine.stages.get_category("1").registration_form
        assert form[0].id == "field-location"


# ═══════════════════════════════════════════════════════════════
#  Fields inside a step
# ═══════════════════════════════════════════════════════════════


class TestStepFields:
    def test_add_field_persists(self, app, registration):
        field = registration.add_field("1", "step-3", "radio")
        assert field.options == ["Option 1", "Option 2"]
        stored = engine_from_app(app).registration.get_step("1", "step-3")
        assert _ids(stored.form_fields) == ["field-location", field.id]

    def test_update_field(self, registration):
        field = registration.update_field(
            "1", "step-1", "field-project-title", {"label": "Title", "required": False}
        )
        assert field.label == "Title"
        assert registration.get_step("1", "step-1").form_fields[2].required is False

    def test_update_rejects_string_options(self, registration):
        with pytest.raises(ValidationError):
            registration.update_field("1", "step-3", "field-location", {"options": "abc"})

    def test_update_unknown_field(self, registration):
        with pytest.raises(NotFoundError):
            registration.update_field("1", "step-1", "field-amount", {"label": "x"})

    def test_delete_field(self, registration):
        fields = registration.delete_field("1", "step-1", "field-project-type")
        assert "field-project-type" not in _ids(fields)
        assert len(registration.get_step("1", "step-1").form_fields) == 3

    def test_reorder_field(self, registration):
        fields = registration.reorder_field("1", "step-1", "field-project-description", 0, ABOVE, RECT)
        assert _ids(fields)[0] == "field-project-description"
        fields = registration.reorder_field("1", "step-1", "field-project-description", 2, BELOW, RECT)
        assert _ids(fields)[2] == "field-project-description"

    def test_unknown_step(self, registration):
        with pytest.raises(NotFoundError):
            registration.add_field("1", "step-9", "text")


# ═══════════════════════════════════════════════════════════════
#  Step versions
# ═══════════════════════════════════════════════════════════════


class TestStepVersions:
    def test_publish(self, engine, registration):
        v1 = registration.publish_step("1", "step-3", published_by="alice")
        assert (v1.version, v1.is_active, v1.step_id, v1.step_name) == (1, True, "step-3", "Location")
        assert v1.to_dict()["stepId"] == "step-3"
        registration.add_field("1", "step-3", "text")
        v2 = registration.publish_step("1", "step-3")
        assert len(v2.form_fields) == 2
        assert _summary(registration.list_step_versions("1", "step-3")) == [(2, True), (1, False)]
        assert engine.repository.revision("stepFormVersions_1_step-3") == 2

    def test_versions_are_per_step(self, registration):
        registration.publish_step("1", "step-3")
        assert registration.list_step_versions("1", "step-1") == []

    def test_empty_step(self, engine, registration):
        step = registration.add_step("1")
        revision = engine.repository.revision("projectTypes")
        with pytest.raises(EmptyFormError) as exc:
            registration.publish_step("1", step.id)
        assert "registration step" in str(exc.value)
        assert registration.list_step_versions("1", step.id) == []
        assert engine.repository.revision("projectTypes") == revision

    def test_rollback_restores_step_fields(self, app, registration):
        v1 = registration.publish_step("1", "step-3")
        registration.add_field("1", "step-3", "text")
        registration.publish_step("1", "step-3")

        restored = registration.rollback_step("1", "step-3", v1.id)
        assert restored.version == 1
        assert _summary(registration.list_step_versions("1", "step-3")) == [(2, False), (1, True)]

        fresh = engine_from_app(app).registration
        assert _ids(fresh.get_step("1", "step-3").form_fields) == ["field-location"]
        assert "field-location" in _ids(fresh.list_steps("1")[2].form_fields)

    def test_rollback_unknown_version(self, registration):
        registration.publish_step("1", "step-3")
        with pytest.raises(NotFoundError):
            registration.rollback_step("1", "step-3", "version-missing")
        assert _summary(registration.list_step_versions("1", "step-3")) == [(1, True)]

    def test_numbers_keep_increasing(self, registration):
        v1 = registration.publish_step("1", "step-3")
        registration.publish_step("1", "step-3")
        registration.rollback_step("1", "step-3", v1.id)
        assert registration.publish_step("1", "step-3").version == 3

    def test_snapshot_is_a_copy(self, registration):
        registration.publish_step("1", "step-3")
        registration.update_field("1", "step-3", "field-location", {"label": "Site"})
        assert registration.list_step_versions("1", "step-3")[0].form_fields[0].label == "Location"


# ═══════════════════════════════════════════════════════════════
#  Whole-form versions
# ═══════════════════════════════════════════════════════════════


class TestFormVersions:
    def test_publish_flattens_steps(self, registration):
        registration.reorder_steps("1", 3, 0)
        version = registration.publish_form("1", published_by="bob")
        assert version.step_id is None
        assert "stepId" not in version.to_dict()
        assert len(version.form_fields) == 22
        assert version.form_fields[0].id == "field-letter-of-intent"
        assert registration.get_active_form_version("1").id == version.id

    def test_publish_empty_form(self, registration):
        for step in registration.list_steps("1")[1:]:
            registration.delete_step("1", step.id)
        for field in list(registration.get_step("1", "step-1").form_fields):
            registration.delete_field("1", "step-1", field.id)
        with pytest.raises(EmptyFormError):
            registration.publish_form("1")
        assert registration.list_form_versions("1") == []

    def test_rollback(self, engine, registration):
        v1 = registration.publish_form("1")
        registration.delete_step("1", "step-4")
        v2 = registration.publish_form("1")
        assert len(v2.form_fields) == 14

        registration.rollback_form("1", v1.id)
        assert _summary(registration.list_form_versions("1")) == [(2, False), (1, True)]
        assert len(engine.stages.get_category("1").registration_form) == 22
        assert len(registration.list_steps("1")) == 3

    def test_rollback_unknown(self, registration):
        with pytest.raises(NotFoundError):
            registration.rollback_form("1", "version-missing")


# ═══════════════════════════════════════════════════════════════
#  Audit events and stale sessions
# ═══════════════════════════════════════════════════════════════


class TestRegistrationAudit:
    def test_events(self, recorded_engine, notifier):
        recorded_engine.stages.ensure_category("1")
        recorded_engine.registration.list_steps("1")
        assert notifier.actions == [audit_events.CATEGORY_CREATED]

        step = recorded_engine.registration.add_step("1", "Extra")
        recorded_engine.registration.add_field("1", step.id, "text")
        version = recorded_engine.registration.publish_step("1", step.id)
        recorded_engine.registration.rollback_step("1", step.id, version.id)
        form = recorded_engine.registration.publish_form("1")
        recorded_engine.registration.rollback_form("1", form.id)

        assert notifier.actions[1:] == [
            audit_events.REGISTRATION_STEPS_SAVED,
            audit_events.REGISTRATION_STEPS_SAVED,
            audit_events.REGISTRATION_STEP_PUBLISHED,
            audit_events.REGISTRATION_STEP_ROLLED_BACK,
            audit_events.REGISTRATION_FORM_PUBLISHED,
            audit_events.REGISTRATION_FORM_ROLLED_BACK,
        ]
        assert notifier.events[3] == (audit_events.REGISTRATION_STEP_PUBLISHED, "1", version.id)


class TestRegistrationConflicts:
    def test_stale_session_publish_writes_nothing(self, memory_backend):
        first = build_engine(memory_backend, seed_defaults=False)
        first.stages.ensure_category("1")
        first.registration.list_steps("1")

        second = build_engine(memory_backend, seed_defaults=False)
        second.registration.rename_step("1", "step-1", "Basics")

        with pytest.raises(ConflictError):
            first.registration.publish_step("1", "step-3")

        fresh = build_engine(memory_backend, seed_defaults=False)
        assert fresh.registration.list_step_versions("1", "step-3") == []
        assert fresh.registration.get_step("1", "step-1").name == "Basics"
