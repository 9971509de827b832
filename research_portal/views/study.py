"""Study API view functions

Changes to a study's staff or enrolled patients, and publishing a form
under a study, fan the study's forms out to assignments.  Fan-out runs
inline with the request, or via the celery queue when
``DEFER_BACKFILL`` is configured.
"""
from flask import Blueprint, abort, current_app, jsonify, request

from ..audit import auditable_event
from ..database import db
from ..date_tools import FHIR_datetime
from ..models.fan_out import assign_form, backfill
from ..models.form import Form
from ..models.form_response import FormResponse
from ..models.patient import Patient, owners_query
from ..models.role import ROLE
from ..models.study import (
    Study,
    delete_study,
    status_types,
    studies_accessible,
)
from ..models.user import require_user
from ..tasks import backfill_study_task

study_api = Blueprint('study_api', __name__)

STUDY_WRITE_ROLES = (ROLE.ADMIN.value, ROLE.RESEARCHER.value)


def writable_study(user, study_id):
    """Look up study within user's organization, enforcing write access"""
    study = db.session.get(Study, study_id)
    if study is None or study.organization_id != user.organization_id:
        abort(404, "Study {} not found".format(study_id))
    study.check_writable(user)
    return study


def trigger_backfill(study, user):
    """Run or queue fan-out for the study

    :returns: number of assignments created, or None when queued

    """
    if current_app.config.get('DEFER_BACKFILL'):
        backfill_study_task.delay(study.id, user_id=user.id)
        current_app.logger.debug("queued backfill of %s", study)
        return None
    return backfill(study.id, user_id=user.id)


def list_of(data, key, kind):
    values = data.get(key)
    if not isinstance(values, list) or not all(
            isinstance(v, kind) for v in values):
        abort(400, "{} requires a list of {}".format(key, kind.__name__))
    return values


@study_api.route('/api/study/<int:study_id>', methods=('PATCH',))
def update_study(study_id):
    """Update study attributes, staff and enrolled patients

    ---
    tags:
      - Study
    operationId: update_study
    parameters:
      - name: study_id
        in: path
        required: true
        type: integer
      - in: body
        name: body
        schema:
          properties:
            title:
              type: string
            description:
              type: string
            status:
              type: string
              enum: [draft, active, paused, closed]
            assigned_staff:
              type: array
              items:
                type: integer
              description: user ids, replaces the current staff list
            assigned_patients:
              type: array
              items:
                type: string
              description: patient pids, replaces the current enrollment
    produces:
      - application/json
    responses:
      200:
        description:
          the updated study; ``backfill`` holds the number of assignments
          created, null when fan-out was queued or not triggered
      403:
        description: if the current user may not modify the study
      404:
        description: if no such study exists in the user's organization

    """
    user = require_user(*STUDY_WRITE_ROLES)
    study = writable_study(user, study_id)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, "Requires JSON body")

    if data.get('title'):
        study.title = data['title']
    if 'description' in data:
        study.description = data['description']
    if data.get('status'):
        if data['status'] not in status_types:
            abort(400, "Invalid status {}".format(data['status']))
        study.status = data['status']

    membership_changed = False
    if 'assigned_staff' in data:
        study.set_assigned_staff(list_of(data, 'assigned_staff', int))
        membership_changed = True
    if 'assigned_patients' in data:
        pids = list_of(data, 'assigned_patients', str)
        study.set_assigned_patients([Patient.normalize_pid(p) for p in pids])
        membership_changed = True
    db.session.commit()

    inserted = None
    if membership_changed:
        inserted = trigger_backfill(study, user)
    return jsonify(study=study.as_json(), backfill=inserted)


@study_api.route('/api/study/<int:study_id>', methods=('DELETE',))
def remove_study(study_id):
    """Delete the study with its forms, assignments and responses"""
    user = require_user(*STUDY_WRITE_ROLES)
    study = writable_study(user, study_id)
    delete_study(study)
    db.session.commit()
    auditable_event(
        "deleted study {}".format(study_id), user_id=user.id,
        context='study')
    return jsonify(message='deleted')


@study_api.route('/api/study/<int:study_id>/form', methods=('POST',))
def publish_form(study_id):
    """Publish a questionnaire under the study and fan it out

    Body: ``{"version": "1", "schema": {questionnaire definition}}``

    """
    user = require_user(*STUDY_WRITE_ROLES)
    study = writable_study(user, study_id)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, "Requires JSON body")
    data['kind'] = 'study'

    form = Form.from_json(data, study=study, created_by_id=user.id)
    db.session.add(form)
    db.session.commit()
    auditable_event(
        "published {} under study {}".format(form, study_id),
        user_id=user.id, context='form')

    inserted = trigger_backfill(study, user)
    return jsonify(form=form.as_json(), backfill=inserted), 201


@study_api.route('/api/study/<int:study_id>/forms')
def study_forms(study_id):
    """List forms published under the study, newest first"""
    user = require_user(*STUDY_WRITE_ROLES)
    study = writable_study(user, study_id)
    forms = Form.query.filter_by(study_id=study.id).order_by(
        Form.created_at.desc(), Form.id.desc())
    return jsonify(forms=[f.as_json() for f in forms])


@study_api.route('/api/study/<int:study_id>/responses')
def study_responses(study_id):
    """List responses stored for the study, most recently authored first"""
    user = require_user(
        ROLE.ADMIN.value, ROLE.RESEARCHER.value, ROLE.STAFF.value)
    study = studies_accessible(user).filter(Study.id == study_id).first()
    if study is None:
        abort(404, "Study {} not found".format(study_id))
    responses = FormResponse.query.filter_by(
        study_id=study.id, organization_id=user.organization_id).order_by(
        FormResponse.authored_at.desc(), FormResponse.id.desc())
    return jsonify(responses=[r.as_json() for r in responses])


@study_api.route('/api/form/<int:form_id>/assign', methods=('POST',))
def assign(form_id):
    """Assign a study form to patients

    Body: ``{"pids": [...], "assignee_id": optional user id,
    "due_at": optional datetime}``.  Without an assignee, each patient's
    owners (active staff or researchers) receive the task.

    """
    user = require_user(*STUDY_WRITE_ROLES)
    form = db.session.get(Form, form_id)
    if form is None or form.organization_id != user.organization_id:
        abort(404, "Form {} not found".format(form_id))
    if form.study is None:
        abort(400, "Only study forms can be assigned")
    form.study.check_writable(user)

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, "Requires JSON body")
    pids = list_of(data, 'pids', str)
    if not pids:
        abort(400, "pids requires at least one patient")

    assignee = None
    if data.get('assignee_id') is not None:
        if not isinstance(data['assignee_id'], int):
            abort(400, "assignee_id must be an integer")
        assignee = owners_query(
            user.organization_id, [data['assignee_id']]).first()
        if assignee is None:
            abort(404, "Assignee not found")
    due_at = FHIR_datetime.parse(
        data.get('due_at'), error_subject='due_at', none_safe=True)

    patients = []
    for pid in pids:
        patient = Patient.find_by_pid(
            user.organization_id, Patient.normalize_pid(pid))
        if patient is None:
            abort(404, "Patient {} not found".format(pid))
        patients.append(patient)

    inserted = assign_form(form, patients, assignee=assignee, due_at=due_at)
    db.session.commit()
    auditable_event(
        "assigned {} to {} patients, {} assignments created".format(
            form, len(patients), inserted),
        user_id=user.id, context='assignment')
    return jsonify(assigned=inserted)
