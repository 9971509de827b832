"""Audit Module"""
from datetime import datetime
from enum import Enum

from ..database import db
from ..date_tools import FHIR_datetime


class Context(Enum):
    # only add new contexts to END of list, otherwise ordering gets messed up
    (other, login, task, study, form, assignment) = range(6)


class Audit(db.Model):
    """ORM class for audit data

    Records who performed an auditable action and when, such as task
    submission or reset and study fan-out.

    """
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.ForeignKey('users.id'))
    _context = db.Column('context', db.Text, default='other', nullable=False)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    comment = db.Column(db.Text)

    def __str__(self):
        return (
            "Audit by user {0.user_id} at {0.timestamp}: "
            "{0.context}: {0.comment}".format(self))

    @property
    def context(self):
        return self._context

    @context.setter
    def context(self, ct_string):
        self._context = getattr(Context, ct_string).name

    def as_json(self):
        d = {
            'by': self.user_id,
            'lastUpdated': FHIR_datetime.as_fhir(self.timestamp),
            'context': self.context}
        if self.comment:
            d['comment'] = self.comment
        return d
