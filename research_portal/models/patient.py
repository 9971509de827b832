"""Patient module

Patients are known only by a pseudonymous identifier (``pid``), unique
within the owning organization.  Owners are the staff or researcher
accounts responsible for the patient, used when a form is assigned
without naming an explicit assignee.
"""
from datetime import datetime
import re

from flask import abort
from sqlalchemy import UniqueConstraint

from ..database import db
from .role import OWNER_ROLES, Role
from .user import User

PID_PATTERN = re.compile(r'^[A-Z0-9_-]{3,}$')

patient_owners = db.Table(
    'patient_owners',
    db.Column(
        'patient_id', db.ForeignKey('patients.id', ondelete='cascade'),
        primary_key=True),
    db.Column(
        'user_id', db.ForeignKey('users.id', ondelete='cascade'),
        primary_key=True),
)


class Patient(db.Model):
    __tablename__ = 'patients'
    id = db.Column(db.Integer, primary_key=True)
    pid = db.Column(db.String(64), nullable=False)
    organization_id = db.Column(
        db.ForeignKey('organizations.id', ondelete='cascade'),
        nullable=False, index=True)
    category = db.Column(db.String(120))
    status = db.Column(
        db.Enum('active', 'inactive', name='patient_status_enum'),
        nullable=False, default='active')
    created_at = db.Column(
        db.DateTime, default=datetime.utcnow, nullable=False)

    owners = db.relationship(
        'User', secondary=patient_owners, order_by='User.id')

    __table_args__ = (
        UniqueConstraint(
            'organization_id', 'pid', name='uq_patient_org_pid'),)

    def __str__(self):
        return "Patient {0.pid} ({0.id})".format(self)

    @staticmethod
    def normalize_pid(pid):
        """Return upper case pid, or raise 400 on invalid format"""
        value = (pid or '').strip().upper()
        if not PID_PATTERN.match(value):
            abort(
                400,
                "PID must be uppercase letters, digits, _ or -, "
                "length >= 3")
        return value

    @classmethod
    def find_by_pid(cls, organization_id, pid):
        return cls.query.filter_by(
            organization_id=organization_id, pid=pid).first()

    def eligible_owners(self):
        """Active owners within the patient's organization able to own tasks"""
        return [
            u for u in self.owners if
            u.active and u.organization_id == self.organization_id and
            u.has_role(*OWNER_ROLES)]

    def as_json(self):
        return {
            'id': self.id,
            'pid': self.pid,
            'category': self.category,
            'status': self.status,
            'owners': [u.as_json() for u in self.owners]}


def owners_query(organization_id, user_ids):
    """Query for users in organization eligible to own patients/tasks"""
    return User.query.filter(
        User.id.in_(user_ids),
        User.organization_id == organization_id,
        User.active.is_(True),
        User.roles.any(Role.name.in_(OWNER_ROLES)))
