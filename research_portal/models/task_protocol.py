"""Task protocol module

Operations clients perform on logical tasks.  Every operation addresses
a task through the id of any member assignment, and every result is
recomputed from stored rows after the mutation commits, never taken
from the in-flight state of the request.

Submission writes the group's single response before flipping every
member to ``submitted``.  Should the second step fail, the response is
left in place and resubmission completes the group; both steps are safe
to repeat.  Reset is the mirror image.
"""
from flask import abort, current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from ..audit import auditable_event
from ..database import db
from .access import (
    check_task_access,
    load_member,
    permitted,
    scope_assignments,
)
from .answers import validate_answers
from .assignment import (
    OPEN,
    SUBMITTED,
    Assignment,
    set_group_status,
    status_types,
)
from .form import Form
from .form_response import FormResponse
from .logical_task import LogicalTask, logical_tasks
from .user import User


def list_logical_tasks(
        user, status=None, study_id=None, due_from=None, due_to=None):
    """Return the logical tasks visible to user

    ``study_id`` narrows the rows considered; ``status`` and the due
    date window apply to each task's aggregate values, so a task with an
    open member but a submitted sibling matches only ``submitted``.

    :param status: one of the assignment status values
    :param due_from: naive UTC datetime, inclusive lower bound
    :param due_to: naive UTC datetime, inclusive upper bound
    :returns: list of LogicalTasks ordered by seed id

    """
    if status is not None and status not in status_types:
        abort(400, "Invalid status {}; expected one of {}".format(
            status, ', '.join(status_types)))

    query = scope_assignments(user)
    if study_id is not None:
        query = query.filter(Assignment.study_id == study_id)
    # everything LogicalTask.as_json reads, loaded with the rows
    query = query.options(
        joinedload(Assignment.assignee).selectinload(User.roles),
        joinedload(Assignment.form),
        joinedload(Assignment.study),
        joinedload(Assignment.patient))
    tasks = logical_tasks(query.order_by(Assignment.id))

    if status is not None:
        tasks = [t for t in tasks if t.status == status]
    if due_from is not None or due_to is not None:
        tasks = [t for t in tasks if t.due_at is not None and (
            due_from is None or t.due_at >= due_from) and (
            due_to is None or t.due_at <= due_to)]
    return tasks


def load_group(user, assignment_id, permission):
    """Resolve any member id to its group key, enforcing access

    NotFound is raised ahead of Forbidden.
    """
    assignment = load_member(user, assignment_id)
    check_task_access(user, assignment, permission)
    return assignment.group_key


def current_task(key):
    """Recompute the logical task for key from stored rows"""
    return LogicalTask(Assignment.group_members(key))


def get_logical_task(user, assignment_id):
    """Return the logical task, its response and whether user may submit

    :returns: dict with keys ``task``, ``response`` (None if not yet
      submitted) and ``can_submit``

    """
    key = load_group(user, assignment_id, 'view')
    return {
        'task': current_task(key),
        'response': FormResponse.for_group(key),
        'can_submit': permitted(user, key)}


def submit(user, assignment_id, answers):
    """Store answers for the logical task and mark every member submitted

    Resubmission overwrites the prior response; editing a submitted
    task is supported.

    :raises :py:exc:`werkzeug.exceptions.NotFound`: unknown task or form
    :raises :py:exc:`werkzeug.exceptions.Forbidden`: user may not edit
    :raises ValidationFailed: answers don't conform to the form
    :returns: dict with keys ``task`` and ``response``

    """
    key = load_group(user, assignment_id, 'edit')
    form = db.session.get(Form, key.form_id)
    if form is None:
        abort(404, "Form {} not found".format(key.form_id))
    validate_answers(answers, form.schema)

    try:
        FormResponse.upsert(key, answers, authored_by=user)
        updated = set_group_status(key, SUBMITTED)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    current_app.logger.debug(
        "submission on task %s marked %d members", assignment_id, updated)
    auditable_event(
        "submitted task {} for patient {}".format(
            assignment_id, key.patient_id),
        user_id=user.id, context='task')

    return {
        'task': current_task(key),
        'response': FormResponse.for_group(key)}


def reset_response(user, assignment_id):
    """Remove the logical task's response and reopen every member

    Safe to repeat; resetting a task never submitted simply reopens it.

    :returns: dict with key ``task``

    """
    key = load_group(user, assignment_id, 'edit')
    try:
        deleted = FormResponse.delete_for_group(key)
        set_group_status(key, OPEN)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    auditable_event(
        "reset task {} for patient {}{}".format(
            assignment_id, key.patient_id,
            '' if deleted else ' (no response on file)'),
        user_id=user.id, context='task')

    return {'task': current_task(key)}
