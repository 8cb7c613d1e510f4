"""
Admin command line, registered on ``app.cli``.

Every command opens a fresh editor session, performs one complete workflow
step and prints JSON on stdout. Domain errors print
``{"error": ..., "code": ...}`` and exit non-zero.

Usage:
    flask --app wsgi categories list
    flask --app wsgi stages add 2 "Validation"
    flask --app wsgi stages reorder 2 5 0
    flask --app wsgi forms add-field 2 3 select
    flask --app wsgi forms publish 2 3 --by alice
    flask --app wsgi forms rollback 2 3 version-...
    flask --app wsgi registration add-field 2 step-1 email
    flask --app wsgi registration publish-form 2 --by alice
"""

import functools
import json
import logging

import click
from flask import current_app
from flask.cli import AppGroup

from stageforms.core.exceptions import (
    ConflictError,
    EmptyFormError,
    NotFoundError,
    SessionStateError,
    ValidationError,
)
from stageforms.services.engine import engine_from_app
from stageforms.services.ordering import ItemRect
from stageforms.utils.errors import error_payload, exit_code_for

logger = logging.getLogger(__name__)

_DOMAIN_ERRORS = (NotFoundError, ValidationError, EmptyFormError, ConflictError, SessionStateError)

categories_cli = AppGroup("categories", help="Project categories.")
stages_cli = AppGroup("stages", help="Ordered stages of a category.")
forms_cli = AppGroup("forms", help="Stage forms and their published versions.")
registration_cli = AppGroup("registration", help="Multi-step registration form of a category.")


def _echo(payload):
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _json_option(value, name):
    try:
        data = json.loads(value)
    except ValueError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint=name)
    if not isinstance(data, dict):
        raise click.BadParameter("expected a JSON object", param_hint=name)
    return data


def domain_command(func):
    """Map engine exceptions to a JSON error body and a non-zero exit code."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except _DOMAIN_ERRORS as exc:
            payload = error_payload(exc)
            logger.info("Command failed: %s", exc, extra={"command": func.__name__})
            _echo(payload)
            raise click.exceptions.Exit(exit_code_for(payload["code"]))

    return wrapper


# ═════════════════════════════════════════════════════════════════════════════
# categories
# ═════════════════════════════════════════════════════════════════════════════


@categories_cli.command("list")
@domain_command
def list_categories():
    """List categories (seeds the default catalog into an empty store)."""
    engine = engine_from_app()
    _echo([c.to_dict() for c in engine.stages.list_categories()])


@categories_cli.command("create")
@click.argument("name")
@click.option("--description", default=None)
@domain_command
def create_category(name, description):
    engine = engine_from_app()
    _echo(engine.stages.create_category(name, description=description).to_dict())


@categories_cli.command("update")
@click.argument("category_id")
@click.option("--name", default=None)
@click.option("--description", default=None)
@domain_command
def update_category(category_id, name, description):
    engine = engine_from_app()
    _echo(engine.stages.update_category(category_id, name=name, description=description).to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# stages
# ═════════════════════════════════════════════════════════════════════════════


@stages_cli.command("list")
@click.argument("category_id")
@domain_command
def list_stages(category_id):
    """List a category's stages in order (creates the category on first use)."""
    session = engine_from_app().open_session(category_id)
    _echo([s.to_dict() for s in session.list_stages()])


@stages_cli.command("add")
@click.argument("category_id")
@click.argument("name")
@domain_command
def add_stage(category_id, name):
    session = engine_from_app().open_session(category_id)
    _echo(session.add_stage(name).to_dict())


@stages_cli.command("rename")
@click.argument("category_id")
@click.argument("stage_id")
@click.argument("name")
@domain_command
def rename_stage(category_id, stage_id, name):
    session = engine_from_app().open_session(category_id)
    _echo(session.rename_stage(stage_id, name).to_dict())


@stages_cli.command("delete")
@click.argument("category_id")
@click.argument("stage_id")
@domain_command
def delete_stage(category_id, stage_id):
    session = engine_from_app().open_session(category_id)
    _echo([s.to_dict() for s in session.delete_stage(stage_id)])


@stages_cli.command("move")
@click.argument("category_id")
@click.argument("stage_id")
@click.argument("direction", type=click.Choice(["up", "down"]))
@domain_command
def move_stage(category_id, stage_id, direction):
    session = engine_from_app().open_session(category_id)
    _echo([s.to_dict() for s in session.move_stage(stage_id, direction)])


@stages_cli.command("reorder")
@click.argument("category_id")
@click.argument("from_index", type=int)
@click.argument("to_index", type=int)
@domain_command
def reorder_stages(category_id, from_index, to_index):
    """Drag the stage at FROM_INDEX to TO_INDEX (zero-based)."""
    session = engine_from_app().open_session(category_id)
    result = session.reorder_stages(from_index, to_index)
    _echo({
        "stages": [s.to_dict() for s in result["stages"]],
        "previousPositions": result["previous_positions"],
    })


# ═════════════════════════════════════════════════════════════════════════════
# forms
# ═════════════════════════════════════════════════════════════════════════════


@forms_cli.command("show")
@click.argument("category_id")
@click.argument("stage_id")
@domain_command
def show_form(category_id, stage_id):
    """Print the stage's live fields and its active version, if any."""
    engine = engine_from_app()
    session = engine.open_session(category_id)
    session.configure(stage_id)
    fields = session.preview()
    active = engine.versions.get_active_version(category_id, stage_id)
    _echo({
        "stageId": str(stage_id),
        "formFields": fields,
        "activeVersion": active.version if active else None,
    })


@forms_cli.command("add-field")
@click.argument("category_id")
@click.argument("stage_id")
@click.argument("field_type")
@domain_command
def add_field(category_id, stage_id, field_type):
    session = engine_from_app().open_session(category_id)
    session.configure(stage_id)
    field = session.add_field(field_type)
    session.save()
    _echo(field.to_dict())


@forms_cli.command("update-field")
@click.argument("category_id")
@click.argument("stage_id")
@click.argument("field_id")
@click.option("--set", "updates", required=True, help='JSON object, e.g. \'{"label": "Email"}\'')
@domain_command
def update_field(category_id, stage_id, field_id, updates):
    changes = _json_option(updates, "--set")
    session = engine_from_app().open_session(category_id)
    session.configure(stage_id)
    field = session.update_field(field_id, changes)
    session.save()
    _echo(field.to_dict())


@forms_cli.command("delete-field")
@click.argument("category_id")
@click.argument("stage_id")
@click.argument("field_id")
@domain_command
def delete_field(category_id, stage_id, field_id):
    session = engine_from_app().open_session(category_id)
    session.configure(stage_id)
    session.delete_field(field_id)
    saved = session.save()
    _echo([f.to_dict() for f in saved.form_fields or []])


@forms_cli.command("move-field")
@click.argument("category_id")
@click.argument("stage_id")
@click.argument("field_id")
@click.argument("drop_index", type=int)
@click.option("--below", is_flag=True, help="Drop on the lower half of the target field.")
@domain_command
def move_field(category_id, stage_id, field_id, drop_index, below):
    """Drop FIELD_ID onto the field at DROP_INDEX (upper half unless --below)."""
    session = engine_from_app().open_session(category_id)
    session.configure(stage_id)
    # Unit-height target: pointer at 0.25 is above the midpoint, 0.75 below
    rect = ItemRect(top=0.0, height=1.0)
    pointer_y = 0.75 if below else 0.25
    session.reorder_field(field_id, drop_index, pointer_y, rect)
    saved = session.save()
    _echo([f.to_dict() for f in saved.form_fields or []])


@forms_cli.command("publish")
@click.argument("category_id")
@click.argument("stage_id")
@click.option("--by", "published_by", default=None, help="Publisher name (default: DEFAULT_PUBLISHER).")
@domain_command
def publish_form(category_id, stage_id, published_by):
    session = engine_from_app().open_session(category_id)
    session.configure(stage_id)
    version = session.publish(
        published_by=published_by or current_app.config.get("DEFAULT_PUBLISHER")
    )
    session.save()
    _echo(version.to_dict())


@forms_cli.command("versions")
@click.argument("category_id")
@click.argument("stage_id")
@domain_command
def list_versions(category_id, stage_id):
    """Published versions of a stage, most recent first."""
    session = engine_from_app().open_session(category_id)
    session.configure(stage_id)
    _echo([v.to_dict() for v in session.view_versions()])


@forms_cli.command("rollback")
@click.argument("category_id")
@click.argument("stage_id")
@click.argument("version_id")
@domain_command
def rollback_form(category_id, stage_id, version_id):
    """Make VERSION_ID active and restore its fields as the stage's live form."""
    session = engine_from_app().open_session(category_id)
    session.configure(stage_id)
    session.view_versions()
    version = session.rollback(version_id)
    saved = session.save()
    _echo({
        "version": version.to_dict(),
        "formFields": [f.to_dict() for f in saved.form_fields or []],
    })


@forms_cli.command("validate")
@click.argument("category_id")
@click.argument("stage_id")
@click.option("--data", required=True, help="JSON object keyed by field id.")
@domain_command
def validate_form(category_id, stage_id, data):
    """Check a submission against the stage's live form."""
    values = _json_option(data, "--data")
    session = engine_from_app().open_session(category_id)
    session.configure(stage_id)
    session.preview()
    errors = session.validate_preview(values)
    _echo({"valid": not errors, "errors": errors})
    if errors:
        raise click.exceptions.Exit(1)


# ═════════════════════════════════════════════════════════════════════════════
# registration
# ═════════════════════════════════════════════════════════════════════════════


def _registration(category_id):
    engine = engine_from_app()
    engine.stages.ensure_category(category_id)
    return engine.registration


def _steps_payload(steps):
    return [s.to_dict() for s in steps]


@registration_cli.command("steps")
@click.argument("category_id")
@domain_command
def list_steps(category_id):
    """List the registration steps in order (default steps on first use)."""
    _echo(_steps_payload(_registration(category_id).list_steps(category_id)))


@registration_cli.command("add-step")
@click.argument("category_id")
@click.option("--name", default=None, help="Step name (default: 'Step N').")
@domain_command
def add_step(category_id, name):
    _echo(_registration(category_id).add_step(category_id, name).to_dict())


@registration_cli.command("rename-step")
@click.argument("category_id")
@click.argument("step_id")
@click.argument("name")
@domain_command
def rename_step(category_id, step_id, name):
    _echo(_registration(category_id).rename_step(category_id, step_id, name).to_dict())


@registration_cli.command("delete-step")
@click.argument("category_id")
@click.argument("step_id")
@domain_command
def delete_step(category_id, step_id):
    _echo(_steps_payload(_registration(category_id).delete_step(category_id, step_id)))


@registration_cli.command("move-step")
@click.argument("category_id")
@click.argument("step_id")
@click.argument("direction", type=click.Choice(["up", "down"]))
@domain_command
def move_step(category_id, step_id, direction):
    _echo(_steps_payload(_registration(category_id).move_step(category_id, step_id, direction)))


@registration_cli.command("reorder-steps")
@click.argument("category_id")
@click.argument("from_index", type=int)
@click.argument("to_index", type=int)
@domain_command
def reorder_steps(category_id, from_index, to_index):
    """Drag the step at FROM_INDEX to TO_INDEX (zero-based)."""
    steps = _registration(category_id).reorder_steps(category_id, from_index, to_index)
    _echo(_steps_payload(steps))


@registration_cli.command("add-field")
@click.argument("category_id")
@click.argument("step_id")
@click.argument("field_type")
@domain_command
def add_step_field(category_id, step_id, field_type):
    _echo(_registration(category_id).add_field(category_id, step_id, field_type).to_dict())


@registration_cli.command("update-field")
@click.argument("category_id")
@click.argument("step_id")
@click.argument("field_id")
@click.option("--set", "updates", required=True, help="JSON object of field attributes.")
@domain_command
def update_step_field(category_id, step_id, field_id, updates):
    changes = _json_option(updates, "--set")
    field = _registration(category_id).update_field(category_id, step_id, field_id, changes)
    _echo(field.to_dict())


@registration_cli.command("delete-field")
@click.argument("category_id")
@click.argument("step_id")
@click.argument("field_id")
@domain_command
def delete_step_field(category_id, step_id, field_id):
    fields = _registration(category_id).delete_field(category_id, step_id, field_id)
    _echo([f.to_dict() for f in fields])


@registration_cli.command("move-field")
@click.argument("category_id")
@click.argument("step_id")
@click.argument("field_id")
@click.argument("drop_index", type=int)
@click.option("--below", is_flag=True, help="Drop on the lower half of the target field.")
@domain_command
def move_step_field(category_id, step_id, field_id, drop_index, below):
    rect = ItemRect(top=0.0, height=1.0)
    pointer_y = 0.75 if below else 0.25
    fields = _registration(category_id).reorder_field(
        category_id, step_id, field_id, drop_index, pointer_y, rect
    )
    _echo([f.to_dict() for f in fields])


@registration_cli.command("publish-step")
@click.argument("category_id")
@click.argument("step_id")
@click.option("--by", "published_by", default=None, help="Publisher name (default: DEFAULT_PUBLISHER).")
@domain_command
def publish_step(category_id, step_id, published_by):
    version = _registration(category_id).publish_step(
        category_id, step_id,
        published_by=published_by or current_app.config.get("DEFAULT_PUBLISHER"),
    )
    _echo(version.to_dict())


@registration_cli.command("step-versions")
@click.argument("category_id")
@click.argument("step_id")
@domain_command
def list_step_versions(category_id, step_id):
    versions = _registration(category_id).list_step_versions(category_id, step_id)
    _echo([v.to_dict() for v in versions])


@registration_cli.command("rollback-step")
@click.argument("category_id")
@click.argument("step_id")
@click.argument("version_id")
@domain_command
def rollback_step(category_id, step_id, version_id):
    _echo(_registration(category_id).rollback_step(category_id, step_id, version_id).to_dict())


@registration_cli.command("publish-form")
@click.argument("category_id")
@click.option("--by", "published_by", default=None, help="Publisher name (default: DEFAULT_PUBLISHER).")
@domain_command
def publish_registration_form(category_id, published_by):
    """Publish every step's fields as one whole-form version."""
    version = _registration(category_id).publish_form(
        category_id,
        published_by=published_by or current_app.config.get("DEFAULT_PUBLISHER"),
    )
    _echo(version.to_dict())


@registration_cli.command("form-versions")
@click.argument("category_id")
@domain_command
def list_registration_versions(category_id):
    _echo([v.to_dict() for v in _registration(category_id).list_form_versions(category_id)])


@registration_cli.command("rollback-form")
@click.argument("category_id")
@click.argument("version_id")
@domain_command
def rollback_registration_form(category_id, version_id):
    _echo(_registration(category_id).rollback_form(category_id, version_id).to_dict())


def register_cli(app):
    app.cli.add_command(categories_cli)
    app.cli.add_command(stages_cli)
    app.cli.add_command(forms_cli)
    app.cli.add_command(registration_cli)
