"""Form module

Forms hold a questionnaire definition (see
:mod:`research_portal.models.answers` for its shape).  ``base`` forms
belong to the organization at large; ``study`` forms are published under
a study and fanned out to its patients and assignees.
"""
from datetime import datetime

from sqlalchemy.dialects.postgresql import JSONB

from ..database import db
from .answers import validate_form_definition

JSON = db.JSON().with_variant(JSONB(), 'postgresql')

kind_types = ('base', 'study')


class Form(db.Model):
    __tablename__ = 'forms'
    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.ForeignKey('organizations.id', ondelete='cascade'),
        nullable=False, index=True)
    study_id = db.Column(
        db.ForeignKey('studies.id', ondelete='cascade'), index=True)
    kind = db.Column(
        db.Enum(*kind_types, name='form_kind_enum'), nullable=False)
    version = db.Column(db.String(32), nullable=False)
    schema = db.Column(JSON, nullable=False)
    created_by_id = db.Column(db.ForeignKey('users.id'), nullable=False)
    active = db.Column(db.Boolean(), nullable=False, default=True)
    created_at = db.Column(
        db.DateTime, default=datetime.utcnow, nullable=False)

    study = db.relationship('Study', back_populates='forms')

    def __str__(self):
        return "Form {0.id} v{0.version} ({0.kind})".format(self)

    @property
    def title(self):
        return (self.schema or {}).get('title')

    @classmethod
    def from_json(cls, data, study=None, organization_id=None,
                  created_by_id=None):
        """Build a form from posted JSON, validating its definition"""
        validate_form_definition(data.get('schema'))
        form = cls(
            kind=data.get('kind', 'study' if study else 'base'),
            version=str(data.get('version', '1')),
            schema=data['schema'],
            created_by_id=created_by_id)
        if study is not None:
            form.study = study
            form.organization_id = study.organization_id
        else:
            form.organization_id = organization_id
        return form

    def as_json(self):
        return {
            'id': self.id,
            'study_id': self.study_id,
            'kind': self.kind,
            'version': self.version,
            'title': self.title,
            'schema': self.schema,
            'active': self.active}
