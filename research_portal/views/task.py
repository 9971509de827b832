"""Task API view functions"""
from flask import Blueprint, abort, jsonify, request

from ..date_tools import FHIR_datetime
from ..models.role import ROLE
from ..models.task_protocol import (
    get_logical_task,
    list_logical_tasks,
    reset_response,
    submit,
)
from ..models.user import require_user

task_api = Blueprint('task_api', __name__)

TASK_ROLES = (ROLE.ADMIN.value, ROLE.RESEARCHER.value, ROLE.STAFF.value)


def response_json(response):
    return response.as_json() if response else None


@task_api.route('/api/task')
def list_tasks():
    """Returns the logical tasks visible to the current user

    ---
    tags:
      - Task
    operationId: list_tasks
    parameters:
      - name: status
        in: query
        description: aggregate status, one of open, submitted, expired
        required: false
        type: string
      - name: study_id
        in: query
        description: limit to tasks of the given study
        required: false
        type: integer
      - name: due_from
        in: query
        description: earliest aggregate due date, inclusive
        required: false
        type: string
        format: date-time
      - name: due_to
        in: query
        description: latest aggregate due date, inclusive
        required: false
        type: string
        format: date-time
    produces:
      - application/json
    responses:
      200:
        description: list of logical tasks, one per form and patient
      400:
        description: unknown status or unparsable date
      401:
        description: if not authenticated

    """
    user = require_user(*TASK_ROLES)
    study_id = request.args.get('study_id')
    if study_id is not None:
        try:
            study_id = int(study_id)
        except ValueError:
            abort(400, "study_id must be an integer")
    due_from = FHIR_datetime.parse(
        request.args.get('due_from'), error_subject='due_from',
        none_safe=True)
    due_to = FHIR_datetime.parse(
        request.args.get('due_to'), error_subject='due_to', none_safe=True)

    tasks = list_logical_tasks(
        user, status=request.args.get('status'), study_id=study_id,
        due_from=due_from, due_to=due_to)
    return jsonify(tasks=[t.as_json() for t in tasks], total=len(tasks))


@task_api.route('/api/task/<int:assignment_id>')
def task_detail(assignment_id):
    """Returns the logical task addressed by any member assignment id

    Includes the stored response, if any, and whether the current user
    may submit on behalf of the task.

    """
    user = require_user(*TASK_ROLES)
    result = get_logical_task(user, assignment_id)
    return jsonify(
        task=result['task'].as_json(),
        response=response_json(result['response']),
        can_submit=result['can_submit'])


@task_api.route('/api/task/<int:assignment_id>/submit', methods=('POST',))
def submit_task(assignment_id):
    """Submit answers for the logical task

    Body: ``{"answers": {linkId: value, ...}}``.  Resubmission overwrites
    the prior answers.

    """
    user = require_user(*TASK_ROLES)
    if not request.is_json:
        abort(400, "Requires JSON body with answers")
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or 'answers' not in data:
        abort(400, "Requires JSON body with answers")

    result = submit(user, assignment_id, data['answers'])
    return jsonify(
        task=result['task'].as_json(),
        response=response_json(result['response']))


@task_api.route(
    '/api/task/<int:assignment_id>/response', methods=('DELETE',))
def reset_task(assignment_id):
    """Delete the task's response and reopen every member assignment"""
    user = require_user(*TASK_ROLES)
    result = reset_response(user, assignment_id)
    return jsonify(task=result['task'].as_json())
