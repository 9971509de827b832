"""Assignment module

An Assignment is the physical unit of work: one form, for one patient,
under one study, owned by one assignee.  Every assignee responsible for
the same (organization, study, form, patient) holds a row of their own;
the set of rows sharing that key is the *logical group* presented to
clients as a single task (see :mod:`research_portal.models.logical_task`).

The composite identity is enforced by a unique constraint and serves as
the idempotency key for fan-out; inserts never collide into errors, they
are skipped with ``ON CONFLICT DO NOTHING``.
"""
from collections import namedtuple
from datetime import datetime

from flask import current_app
from sqlalchemy import UniqueConstraint
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..database import db

OPEN, SUBMITTED, EXPIRED = 'open', 'submitted', 'expired'
status_types = (OPEN, SUBMITTED, EXPIRED)

IDENTITY_COLUMNS = (
    'organization_id', 'study_id', 'form_id', 'patient_id', 'assignee_id')

GroupKey = namedtuple(
    'GroupKey', ['organization_id', 'study_id', 'form_id', 'patient_id'])

INSERT_CONSTRUCTS = {
    'postgresql': pg_insert,
    'sqlite': sqlite_insert,
}


class Assignment(db.Model):
    __tablename__ = 'assignments'
    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.ForeignKey('organizations.id', ondelete='cascade'),
        nullable=False)
    study_id = db.Column(
        db.ForeignKey('studies.id', ondelete='cascade'), nullable=False)
    form_id = db.Column(
        db.ForeignKey('forms.id', ondelete='cascade'), nullable=False)
    patient_id = db.Column(
        db.ForeignKey('patients.id', ondelete='cascade'), nullable=False)
    assignee_id = db.Column(
        db.ForeignKey('users.id', ondelete='cascade'), nullable=False)
    status = db.Column(
        db.Enum(*status_types, name='assignment_status_enum'),
        nullable=False, default=OPEN)
    due_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(
        db.DateTime, default=datetime.utcnow, nullable=False)

    assignee = db.relationship('User')
    form = db.relationship('Form')
    patient = db.relationship('Patient')
    study = db.relationship('Study')

    __table_args__ = (
        UniqueConstraint(*IDENTITY_COLUMNS, name='uq_assignment_identity'),
        db.Index('ix_assignment_assignee_status', 'assignee_id', 'status'),
        db.Index(
            'ix_assignment_group',
            'organization_id', 'study_id', 'form_id', 'patient_id'),
    )

    def __str__(self):
        return (
            "Assignment {0.id} form {0.form_id} patient {0.patient_id} "
            "to user {0.assignee_id}: {0.status}".format(self))

    @property
    def group_key(self):
        return GroupKey(
            self.organization_id, self.study_id, self.form_id,
            self.patient_id)

    @staticmethod
    def group_criteria(key):
        """Filter criteria matching every member of the logical group"""
        return (
            Assignment.organization_id == key.organization_id,
            Assignment.study_id == key.study_id,
            Assignment.form_id == key.form_id,
            Assignment.patient_id == key.patient_id)

    @classmethod
    def group_members(cls, key):
        """Return all rows of the logical group, ordered by id"""
        return cls.query.filter(*cls.group_criteria(key)).order_by(
            cls.id).all()

    @classmethod
    def has_member(cls, key, user_id):
        """True if user_id is a direct assignee on any row of the group"""
        return db.session.query(
            cls.query.filter(
                *cls.group_criteria(key),
                cls.assignee_id == user_id).exists()).scalar()


def dialect_insert(table):
    """Return an insert construct supporting ``ON CONFLICT`` clauses"""
    dialect = db.session.get_bind().dialect.name
    if dialect not in INSERT_CONSTRUCTS:
        raise ValueError(
            "ON CONFLICT not supported on dialect {}".format(dialect))
    return INSERT_CONSTRUCTS[dialect](table)


def insert_if_absent(rows):
    """Insert assignment rows, skipping any whose identity already exists

    Issued as a single batched ``INSERT ... ON CONFLICT DO NOTHING`` so
    concurrent writers are serialized by the unique constraint, never by
    a read-then-write check.

    :param rows: list of dicts naming at least the identity columns
    :returns: number of rows actually inserted

    """
    if not rows:
        return 0

    now = datetime.utcnow()
    values = [
        dict(dict(status=OPEN, due_at=None, created_at=now), **row)
        for row in rows]
    statement = dialect_insert(Assignment.__table__).values(
        values).on_conflict_do_nothing(index_elements=IDENTITY_COLUMNS)
    result = db.session.execute(statement)
    return max(result.rowcount, 0)


def set_group_status(key, status):
    """Set status on every member of the logical group

    Setting a status a row already holds is a no-op, so the update is
    safe to repeat and commutes with concurrent updates to the same
    value.  Loaded instances are left stale until the caller commits.

    :returns: number of rows matched
    """
    assert status in status_types
    return Assignment.query.filter(
        *Assignment.group_criteria(key)).update(
        {Assignment.status: status}, synchronize_session=False)


def expire_overdue_assignments(as_of=None):
    """Flag open assignments whose due date has passed as expired

    :param as_of: naive UTC datetime, defaults to now
    :returns: number of rows updated

    """
    as_of = as_of or datetime.utcnow()
    count = Assignment.query.filter(
        Assignment.status == OPEN,
        Assignment.due_at.isnot(None),
        Assignment.due_at < as_of).update(
        {Assignment.status: EXPIRED}, synchronize_session=False)
    current_app.logger.info(
        "expired %d overdue assignments as of %s", count, as_of)
    return count
