"""Logical task module

Clients never see individual assignment rows; they see one logical task
per (organization, study, form, patient), aggregated across every
assignee's row.  Nothing here is persisted - the view is recomputed from
stored rows on every read.

Aggregation rules:

* status: ``submitted`` wins over ``expired``, which wins over ``open``.
  Once anyone completes the form the task is done; an incomplete task
  past due reads as expired.
* due date: the earliest non-null due date across the group.
* assignees: the distinct assignees across the group.

All three are commutative and associative, so grouping order and the
order rows arrive in never alter the result.
"""
from collections import OrderedDict

from ..date_tools import FHIR_datetime
from .assignment import EXPIRED, OPEN, SUBMITTED

STATUS_PRECEDENCE = {OPEN: 0, EXPIRED: 1, SUBMITTED: 2}


def aggregate_status(statuses):
    """Return the highest precedence status, ``open`` for an empty group"""
    return max(statuses, key=STATUS_PRECEDENCE.__getitem__, default=OPEN)


def aggregate_due(due_dates):
    """Return the earliest non-null due date, or None"""
    return min((d for d in due_dates if d is not None), default=None)


def group_assignments(assignments):
    """Bucket assignments by logical group key

    :returns: OrderedDict of GroupKey -> list of assignments, in order of
      first appearance; the first member of each bucket is its seed

    """
    groups = OrderedDict()
    for assignment in assignments:
        groups.setdefault(assignment.group_key, []).append(assignment)
    return groups


class LogicalTask(object):
    """Read model for one logical group of assignments

    Shared references (form, study, patient) come from the seed member;
    they are identical across the group by construction.
    """

    def __init__(self, members):
        if not members:
            raise ValueError("LogicalTask requires at least one member")
        self.members = list(members)
        self.seed = self.members[0]
        self.key = self.seed.group_key

    @property
    def id(self):
        return self.seed.id

    @property
    def status(self):
        return aggregate_status(m.status for m in self.members)

    @property
    def due_at(self):
        return aggregate_due(m.due_at for m in self.members)

    @property
    def assignees(self):
        distinct = {m.assignee_id: m.assignee for m in self.members}
        return [distinct[k] for k in sorted(distinct)]

    @property
    def assignee_ids(self):
        return sorted({m.assignee_id for m in self.members})

    @property
    def member_ids(self):
        return sorted(m.id for m in self.members)

    def __str__(self):
        return (
            "LogicalTask form {0.form_id} patient {0.patient_id} "
            "study {0.study_id}: {1}".format(self.key, self.status))

    def as_json(self):
        form = self.seed.form
        study = self.seed.study
        patient = self.seed.patient
        return {
            'id': self.id,
            'member_ids': self.member_ids,
            'organization_id': self.key.organization_id,
            'study': {
                'id': self.key.study_id,
                'code': study.code if study else None,
                'title': study.title if study else None},
            'form': {
                'id': self.key.form_id,
                'title': form.title if form else None,
                'version': form.version if form else None},
            'patient': {
                'id': self.key.patient_id,
                'pid': patient.pid if patient else None},
            'status': self.status,
            'due_at': FHIR_datetime.as_fhir(self.due_at),
            'created_at': FHIR_datetime.as_fhir(
                min(m.created_at for m in self.members)),
            'assignees': [a.as_json() for a in self.assignees],
        }


def logical_tasks(assignments):
    """Group and aggregate assignments into a list of LogicalTasks"""
    return [
        LogicalTask(members)
        for members in group_assignments(assignments).values()]
