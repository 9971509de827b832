"""Form response module

At most one response exists per (organization, form, patient),
regardless of how many assignees share the task.  Resubmission
overwrites the stored answers and authorship: last writer wins.
"""
from datetime import datetime

from sqlalchemy import UniqueConstraint

from ..database import db
from ..date_tools import FHIR_datetime
from .assignment import dialect_insert
from .form import JSON


class FormResponse(db.Model):
    __tablename__ = 'form_responses'
    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.ForeignKey('organizations.id', ondelete='cascade'),
        nullable=False)
    form_id = db.Column(
        db.ForeignKey('forms.id', ondelete='cascade'), nullable=False)
    patient_id = db.Column(
        db.ForeignKey('patients.id', ondelete='cascade'), nullable=False)
    study_id = db.Column(
        db.ForeignKey('studies.id', ondelete='cascade'), index=True)
    answers = db.Column(JSON, nullable=False)
    authored_at = db.Column(
        db.DateTime, default=datetime.utcnow, nullable=False)
    authored_by_id = db.Column(db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(
        db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow,
        nullable=False)

    authored_by = db.relationship('User')
    form = db.relationship('Form')
    patient = db.relationship('Patient')

    __table_args__ = (
        UniqueConstraint(
            'organization_id', 'form_id', 'patient_id',
            name='uq_form_response_identity'),)

    def __str__(self):
        return (
            "FormResponse {0.id} form {0.form_id} patient {0.patient_id} "
            "by {0.authored_by_id}".format(self))

    @classmethod
    def for_group(cls, key):
        """Return the response for the logical group's key, or None"""
        return cls.query.filter_by(
            organization_id=key.organization_id,
            form_id=key.form_id,
            patient_id=key.patient_id).first()

    @classmethod
    def upsert(cls, key, answers, authored_by):
        """Create or overwrite the response for the group's key

        Single ``INSERT ... ON CONFLICT DO UPDATE``; concurrent submitters
        on the same group resolve to whichever wrote last.
        """
        now = datetime.utcnow()
        values = {
            'study_id': key.study_id,
            'answers': answers,
            'authored_by_id': authored_by.id,
            'authored_at': now,
            'updated_at': now,
        }
        statement = dialect_insert(cls.__table__).values(
            organization_id=key.organization_id,
            form_id=key.form_id,
            patient_id=key.patient_id,
            created_at=now,
            **values)
        statement = statement.on_conflict_do_update(
            index_elements=['organization_id', 'form_id', 'patient_id'],
            set_=values)
        db.session.execute(statement)
        return cls.query.filter_by(
            organization_id=key.organization_id,
            form_id=key.form_id,
            patient_id=key.patient_id).execution_options(
            populate_existing=True).one()

    @classmethod
    def delete_for_group(cls, key):
        """Delete the group's response if present; returns True if deleted"""
        response = cls.for_group(key)
        if response is None:
            return False
        db.session.delete(response)
        return True

    def as_json(self):
        authored_by = self.authored_by
        return {
            'id': self.id,
            'form_id': self.form_id,
            'study_id': self.study_id,
            'patient_id': self.patient_id,
            'answers': self.answers,
            'authored_at': FHIR_datetime.as_fhir(self.authored_at),
            'authored_by': authored_by.as_json() if authored_by else None}
