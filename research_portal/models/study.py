"""Study module

A study groups the patients enrolled in it, the accounts responsible
for it (assigned staff plus the creator) and the forms published under
it.  Changes to any of these trigger task fan-out, see
:mod:`research_portal.models.fan_out`.
"""
from datetime import datetime

from flask import abort
from sqlalchemy import UniqueConstraint, or_

from ..database import db
from .patient import Patient
from .role import ROLE
from .user import User

status_types = ('draft', 'active', 'paused', 'closed')

study_staff = db.Table(
    'study_staff',
    db.Column(
        'study_id', db.ForeignKey('studies.id', ondelete='cascade'),
        primary_key=True),
    db.Column(
        'user_id', db.ForeignKey('users.id', ondelete='cascade'),
        primary_key=True),
)

study_patients = db.Table(
    'study_patients',
    db.Column(
        'study_id', db.ForeignKey('studies.id', ondelete='cascade'),
        primary_key=True),
    db.Column(
        'patient_id', db.ForeignKey('patients.id', ondelete='cascade'),
        primary_key=True),
)


class Study(db.Model):
    __tablename__ = 'studies'
    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.ForeignKey('organizations.id', ondelete='cascade'),
        nullable=False, index=True)
    code = db.Column(db.String(64), nullable=False)
    title = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text)
    status = db.Column(
        db.Enum(*status_types, name='study_status_enum'),
        nullable=False, default='draft')
    created_by_id = db.Column(db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(
        db.DateTime, default=datetime.utcnow, nullable=False)

    created_by = db.relationship('User', foreign_keys=[created_by_id])
    assigned_staff = db.relationship(
        'User', secondary=study_staff, order_by='User.id')
    assigned_patients = db.relationship(
        'Patient', secondary=study_patients, order_by='Patient.id')
    forms = db.relationship(
        'Form', back_populates='study', order_by='Form.id',
        cascade='all, delete-orphan')

    __table_args__ = (
        UniqueConstraint('organization_id', 'code', name='uq_study_org_code'),)

    def __str__(self):
        return "Study {0.code} ({0.id})".format(self)

    @property
    def assignee_ids(self):
        """Ids of every account a study task fans out to

        The assigned staff plus the study creator, de-duplicated and
        sorted for stable fan-out.
        """
        ids = {u.id for u in self.assigned_staff}
        ids.add(self.created_by_id)
        return sorted(ids)

    @property
    def patient_ids(self):
        return sorted(p.id for p in self.assigned_patients)

    def is_member(self, user):
        """True if user created or is assigned to this study"""
        return user.id == self.created_by_id or any(
            u.id == user.id for u in self.assigned_staff)

    def check_writable(self, user):
        """Abort with 403 unless user may modify this study"""
        if user.organization_id != self.organization_id:
            abort(404, "Study not found")
        if user.has_role(ROLE.ADMIN.value):
            return True
        if user.has_role(ROLE.RESEARCHER.value) and self.is_member(user):
            return True
        abort(403, "Forbidden")

    def set_assigned_staff(self, user_ids):
        """Replace assigned staff with users of this study's organization

        Unknown ids and users from other organizations are silently
        dropped, as is done for the study creation form.
        """
        self.assigned_staff = User.query.filter(
            User.id.in_(user_ids),
            User.organization_id == self.organization_id).all()

    def set_assigned_patients(self, pids):
        """Replace enrolled patients with the named pids of the organization"""
        self.assigned_patients = Patient.query.filter(
            Patient.pid.in_(pids),
            Patient.organization_id == self.organization_id).all()

    def as_json(self):
        return {
            'id': self.id,
            'code': self.code,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'created_by': self.created_by_id,
            'assigned_staff': [u.as_json() for u in self.assigned_staff],
            'assigned_patients': [p.pid for p in self.assigned_patients]}


def studies_accessible(user):
    """Query of studies visible to the given user within their organization"""
    query = Study.query.filter(Study.organization_id == user.organization_id)
    if user.has_role(ROLE.ADMIN.value):
        return query
    if user.has_role(ROLE.RESEARCHER.value):
        return query.filter(or_(
            Study.created_by_id == user.id,
            Study.assigned_staff.any(User.id == user.id)))
    return query.filter(Study.assigned_staff.any(User.id == user.id))


def delete_study(study):
    """Remove study along with its forms, assignments and responses

    The only path by which assignment rows are removed; normal operation
    never deletes them.
    """
    from .assignment import Assignment
    from .form_response import FormResponse

    Assignment.query.filter_by(study_id=study.id).delete(
        synchronize_session=False)
    FormResponse.query.filter_by(study_id=study.id).delete(
        synchronize_session=False)
    db.session.delete(study)
