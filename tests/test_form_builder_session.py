"""
Form Builder Session — state machine gating, draft isolation, publish,
preview validation and version rollback through the admin workflow.
"""

import pytest

from stageforms.core.exceptions import EmptyFormError, SessionStateError
from stageforms.services.form_builder_session import SESSION_TRANSITIONS, BuilderState
from stageforms.services.ordering import ItemRect


RECT = ItemRect(top=0, height=20)


@pytest.fixture()
def builder(engine, category):
    return engine.open_session("1")


def _ids(fields):
    return [f.id for f in fields]


# ═══════════════════════════════════════════════════════════════
#  State machine
# ═══════════════════════════════════════════════════════════════


class TestStateMachine:
    def test_starts_browsing(self, builder):
        assert builder.state == BuilderState.BROWSING
        assert builder.draft is None

    def test_open_session_creates_category(self, engine):
        session = engine.open_session("77")
        assert len(session.list_stages()) == 5

    def test_validate_action(self, builder):
        check = builder.validate_action("configure")
        assert check == {"valid": True, "state": "browsing", "to": "configuring_stage", "reason": None}

    def test_unknown_action(self, builder):
        check = builder.validate_action("teleport")
        assert check["valid"] is False
        assert "Unknown action" in check["reason"]

    def test_field_edit_requires_configuring(self, builder):
        with pytest.raises(SessionStateError):
            builder.add_field("text")

    def test_stage_edit_blocked_while_configuring(self, builder):
        builder.configure("1")
        with pytest.raises(SessionStateError) as exc:
            builder.add_stage("X")
        assert exc.value.state == "configuring_stage"

    def test_edit_mode_off_blocks_everything(self, engine, category):
        session = engine.open_session("1", edit_mode=False)
        assert session.validate_action("configure")["reason"] == "edit mode is off"
        with pytest.raises(SessionStateError):
            session.add_stage("X")
        with pytest.raises(SessionStateError):
            session.configure("1")
        assert [s.name for s in session.list_stages()] == list("ABCDE")

    def test_every_transition_target_is_a_state(self):
        states = {s.value for s in BuilderState}
        for rule in SESSION_TRANSITIONS.values():
            assert rule["to"] in states
            assert set(rule["from"]) <= states

    def test_preview_round_trip(self, builder):
        builder.configure("1")
        builder.preview()
        assert builder.state == BuilderState.PREVIEWING
        with pytest.raises(SessionStateError):
            builder.add_field("text")
        builder.close_preview()
        assert builder.state == BuilderState.CONFIGURING_STAGE

    def test_versions_round_trip(self, builder):
        builder.configure("1")
        assert builder.view_versions() == []
        assert builder.state == BuilderState.VIEWING_VERSIONS
        builder.close_versions()
        assert builder.state == BuilderState.CONFIGURING_STAGE


# ═══════════════════════════════════════════════════════════════
#  Browsing: stage list
# ═══════════════════════════════════════════════════════════════


class TestBrowsing:
    def test_stage_operations(self, builder):
        builder.add_stage("F")
        builder.rename_stage("1", "Start")
        builder.move_stage("2", "up")
        builder.delete_stage("5")
        names = [s.name for s in builder.list_stages()]
        assert names == ["B", "Start", "C", "D", "F"]
        assert [s.order for s in builder.list_stages()] == [1, 2, 3, 4, 5]

    def test_reorder_reports_previous_positions(self, builder):
        result = builder.reorder_stages(4, 0)
        assert [s.name for s in result["stages"]] == list("EABCD")
        assert result["previous_positions"] == {"1": 0, "2": 1, "3": 2, "4": 3, "5": 4}


# ═══════════════════════════════════════════════════════════════
#  Draft editing
# ═══════════════════════════════════════════════════════════════


class TestDraft:
    def test_save_commits_draft(self, engine, builder):
        builder.configure("2")
        field = builder.add_field("email")
        builder.update_field(field.id, {"label": "Contact", "required": True})
        saved = builder.save()

        assert builder.state == BuilderState.BROWSING
        assert builder.draft is None
        assert saved.form_fields[0].label == "Contact"
        assert engine.stages.get_stage("1", "2").form_fields[0].required is True

    def test_cancel_discards_draft(self, engine, builder):
        builder.configure("2")
        builder.add_field("text")
        builder.cancel()
        assert builder.state == BuilderState.BROWSING
        assert engine.stages.get_stage("1", "2").form_fields is None

    def test_draft_is_a_copy(self, engine, builder):
        builder.configure("2")
        builder.add_field("text")
        assert engine.stages.get_stage("1", "2").form_fields is None

    def test_reorder_and_delete_fields(self, builder):
        builder.configure("2")
        ids = [builder.add_field("text").id for _ in range(4)]
        builder.reorder_field(ids[3], 0, 5, RECT)
        builder.delete_field(ids[1])
        assert _ids(builder.draft.form_fields) == [ids[3], ids[0], ids[2]]


# ═══════════════════════════════════════════════════════════════
#  Publish / preview / rollback
# ═══════════════════════════════════════════════════════════════


class TestPublishFlow:
    def test_publish_stays_configuring(self, engine, builder):
        builder.configure("3")
        builder.add_field("text")
        version = builder.publish(published_by="alice")
        assert version.version == 1
        assert builder.state == BuilderState.CONFIGURING_STAGE
        assert len(engine.stages.get_stage("1", "3").form_fields) == 1

    def test_publish_empty_form(self, builder):
        builder.configure("3")
        with pytest.raises(EmptyFormError):
            builder.publish()
        assert builder.state == BuilderState.CONFIGURING_STAGE

    def test_preview_validation(self, builder):
        builder.configure("3")
        email = builder.add_field("email")
        builder.update_field(email.id, {"required": True})
        fields = builder.preview()
        assert fields[0]["id"] == email.id

        assert builder.validate_preview({}) == {email.id: "New email Field is required"}
        assert builder.validate_preview({email.id: "a@b.c"}) == {}

    def test_rollback_then_save(self, engine, builder):
        builder.configure("3")
        first = builder.add_field("text")
        v1 = builder.publish()
        builder.add_field("number")
        builder.publish()

        builder.view_versions()
        restored = builder.rollback(v1.id)
        assert restored.version == 1
        assert builder.state == BuilderState.CONFIGURING_STAGE
        assert _ids(builder.draft.form_fields) == [first.id]
        # Not committed until save
        assert len(engine.stages.get_stage("1", "3").form_fields) == 2

        builder.save()
        assert _ids(engine.stages.get_stage("1", "3").form_fields) == [first.id]
        active = engine.versions.get_active_version("1", "3")
        assert active.version == 1

    def test_rollback_requires_versions_view(self, builder):
        builder.configure("3")
        with pytest.raises(SessionStateError):
            builder.rollback("version-x")
