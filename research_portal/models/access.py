"""Access control for logical tasks

Each role maps to a single predicate deciding whether a principal may
act on a logical group.  Viewing and editing (submit, reset) share the
predicate: any assignee of the group may act on behalf of the whole
group, as it represents one task with several owners.

* admin - any group within the admin's organization
* researcher - groups of studies the researcher created or is assigned
  to, plus any group the researcher is a direct assignee of
* staff - groups the staff member is a direct assignee of

Lookups fail with 404 before authorization fails with 403; a group
belonging to another organization does not exist for the caller.
"""
from flask import abort
from sqlalchemy import and_, false, or_, select
from sqlalchemy.orm import aliased

from ..database import db
from .assignment import Assignment
from .role import ROLE
from .study import Study, studies_accessible

PERMISSIONS = ('view', 'edit')


def _admin_access(user, key):
    return True


def _assignee_access(user, key):
    return Assignment.has_member(key, user.id)


def _researcher_access(user, key):
    if _assignee_access(user, key):
        return True
    study = db.session.get(Study, key.study_id)
    return study is not None and study.is_member(user)


ACCESS_RULES = {
    ROLE.ADMIN.value: _admin_access,
    ROLE.RESEARCHER.value: _researcher_access,
    ROLE.STAFF.value: _assignee_access,
}


def permitted(user, key):
    """True if user may view and act on the logical group named by key"""
    if user.organization_id != key.organization_id:
        return False
    rule = ACCESS_RULES.get(user.role)
    return bool(rule and rule(user, key))


def load_member(user, assignment_id):
    """Look up any member of a logical group on behalf of user

    :raises :py:exc:`werkzeug.exceptions.NotFound`: if no such assignment
      exists within the user's organization

    """
    assignment = db.session.get(Assignment, assignment_id)
    if (assignment is None or
            assignment.organization_id != user.organization_id):
        abort(404, "Task not found")
    return assignment


def check_task_access(user, assignment, permission):
    """Abort with 403 unless user holds permission on assignment's group

    :param permission: 'view' or 'edit'
    :returns: True if permission is granted

    """
    assert permission in PERMISSIONS
    if not permitted(user, assignment.group_key):
        abort(403, "Forbidden: {} of task {}".format(
            permission, assignment.id))
    return True


def scope_assignments(user, query=None):
    """Narrow an Assignment query to the groups user may see

    Whole groups are kept together: when access derives from being an
    assignee of one row, every sibling row of that group is included so
    aggregation sees the complete group.
    """
    if query is None:
        query = Assignment.query
    query = query.filter(Assignment.organization_id == user.organization_id)

    role = user.role
    if role == ROLE.ADMIN.value:
        return query

    mine = aliased(Assignment)
    in_my_group = select(mine.id).where(and_(
        mine.organization_id == Assignment.organization_id,
        mine.study_id == Assignment.study_id,
        mine.form_id == Assignment.form_id,
        mine.patient_id == Assignment.patient_id,
        mine.assignee_id == user.id)).exists()

    if role == ROLE.RESEARCHER.value:
        study_ids = studies_accessible(user).with_entities(Study.id)
        return query.filter(or_(
            Assignment.study_id.in_(study_ids.statement),
            in_my_group))
    if role == ROLE.STAFF.value:
        return query.filter(in_my_group)
    return query.filter(false())
