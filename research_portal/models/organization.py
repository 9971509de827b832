"""Model classes for organizations (tenants)

Every study, patient, form and assignment belongs to exactly one
organization; queries made on behalf of a user are always narrowed to
the user's organization.
"""
from datetime import datetime

from ..database import db


class Organization(db.Model):
    """Tenant organization, i.e. a hospital or research institute"""
    __tablename__ = 'organizations'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.Text, nullable=False)
    active = db.Column(db.Boolean(), nullable=False, default=True)
    created_at = db.Column(
        db.DateTime, default=datetime.utcnow, nullable=False)

    def __str__(self):
        return "Organization {0.id} {0.name}".format(self)

    def as_json(self):
        return {
            'id': self.id,
            'name': self.name,
            'active': self.active}
