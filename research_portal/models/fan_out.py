"""Fan-out and backfill of study assignments

Given a study, one of its forms and the enrolled patients, ensure one
assignment row exists for every (patient, assignee) pair, where the
assignees are the study's assigned staff plus its creator.

Every run recomputes the full Cartesian product and relies on the
unique assignment identity to skip pairs already covered, so repeated
runs are cheap and partial failures heal on the next trigger.  Runs are
triggered when:

* a form is published under a study
* a study's assigned staff changes
* a study's enrolled patients change

Owners removed from a study keep their existing rows; only future
fan-out stops including them.
"""
from flask import abort, current_app
from sqlalchemy.exc import IntegrityError

from ..audit import auditable_event
from ..database import db
from ..date_tools import due_date_from_days
from .assignment import insert_if_absent
from .form import Form
from .study import Study

# postgresql error code for unique_violation
UNIQUE_VIOLATION = '23505'


def assignment_rows(study, form, patient_ids, assignee_ids, due_at=None):
    """Generate identity rows for the Cartesian product of the inputs"""
    return [
        {
            'organization_id': study.organization_id,
            'study_id': study.id,
            'form_id': form.id,
            'patient_id': patient_id,
            'assignee_id': assignee_id,
            'due_at': due_at,
        }
        for patient_id in patient_ids
        for assignee_id in assignee_ids]


def is_duplicate_key(error):
    """True if an IntegrityError reports a unique constraint violation"""
    orig = getattr(error, 'orig', None)
    if getattr(orig, 'pgcode', None) == UNIQUE_VIOLATION:
        return True
    return 'UNIQUE constraint failed' in str(orig)


def fan_out(study, form, patient_ids, assignee_ids, due_at=None):
    """Insert any missing assignment rows for the given pairs

    Each inserted batch is committed, so rows from earlier batches of
    the same backfill survive a later rollback.  A duplicate key raised
    by a racing writer can only mean an equivalent row already exists;
    the batch is rolled back and not retried.  Any other database error
    propagates.  Callers commit their own pending changes before fanning
    out.

    :returns: number of rows inserted

    """
    rows = assignment_rows(
        study, form, sorted(set(patient_ids)), sorted(set(assignee_ids)),
        due_at=due_at)
    if not rows:
        return 0

    try:
        inserted = insert_if_absent(rows)
        db.session.commit()
    except IntegrityError as e:
        if not is_duplicate_key(e):
            raise
        db.session.rollback()
        current_app.logger.debug(
            "duplicate key race during fan-out of form %s for study %s: %s",
            form.id, study.id, e)
        return 0

    current_app.logger.debug(
        "fan-out of %s for %s: %d of %d pairs inserted",
        form, study, inserted, len(rows))
    return inserted


def backfill_study_form(study, form, due_at=None):
    """Ensure every enrolled patient x study assignee holds an assignment

    :param due_at: due date for newly created rows; defaults to
      ``DEFAULT_TASK_DUE_DAYS`` from now when configured
    :returns: number of rows inserted

    """
    if form.study_id != study.id:
        raise ValueError("{} not published under {}".format(form, study))
    if due_at is None:
        due_at = due_date_from_days(
            current_app.config.get('DEFAULT_TASK_DUE_DAYS'))
    return fan_out(
        study, form, study.patient_ids, study.assignee_ids, due_at=due_at)


def backfill_study(study):
    """Backfill every active study form of the given study"""
    forms = Form.query.filter_by(
        study_id=study.id, kind='study', active=True).order_by(Form.id).all()
    return sum(backfill_study_form(study, form) for form in forms)


def backfill(study_id, user_id=None):
    """Backfill by study id, committing the result

    Internal entry point for mutation hooks and the job queue; not
    exposed to API clients.

    :param user_id: the user whose change triggered the backfill, if any,
      for the audit trail
    """
    study = db.session.get(Study, study_id)
    if study is None:
        abort(404, "Study {} not found".format(study_id))
    inserted = backfill_study(study)
    db.session.commit()
    current_app.logger.info(
        "backfill of %s inserted %d assignments", study, inserted)
    if inserted:
        auditable_event(
            "backfill of study {} created {} assignments".format(
                study_id, inserted),
            user_id=user_id, context='assignment')
    return inserted


def assign_form(form, patients, assignee=None, due_at=None):
    """Explicitly assign a study form to the given patients

    Assignees are the named ``assignee`` or, when none is given, each
    patient's eligible owners.  Uses the same idempotent fan-out as
    study backfill.

    :raises :py:exc:`werkzeug.exceptions.BadRequest`: if the form isn't
      published under a study, or a patient has no eligible owner
    :returns: number of rows inserted

    """
    if form.study is None:
        abort(400, "Only study forms can be assigned")

    # resolve every patient's assignees before writing any rows
    batches = []
    for patient in patients:
        if assignee is not None:
            assignee_ids = [assignee.id]
        else:
            assignee_ids = [u.id for u in patient.eligible_owners()]
        if not assignee_ids:
            abort(
                400,
                "No owner (staff/researcher) assignment for patient "
                "{}".format(patient.pid))
        batches.append((patient.id, assignee_ids))

    study = form.study
    return sum(
        fan_out(study, form, [patient_id], assignee_ids, due_at=due_at)
        for patient_id, assignee_ids in batches)
