"""Role module

Role data lives in the `roles` table, populated via:
    `flask seed`

To test for a given role, use the ROLE object:
    user.has_role(ROLE.ADMIN.value)

To extend the list of roles, add name: description pairs to the
STATIC_ROLES dict within.

"""
from enum import Enum

from ..database import db


class Role(db.Model):
    """SQLAlchemy class for `roles` table"""
    __tablename__ = 'roles'
    id = db.Column(db.Integer(), primary_key=True)
    name = db.Column(db.String(50), unique=True)
    description = db.Column(db.Text)

    def __str__(self):
        return "Role {}".format(self.name)

    def as_json(self):
        return {
            'name': self.name,
            'description': self.description,
            'display_name': self.display_name}

    @property
    def display_name(self):
        """Generate and return 'Title Case' version of name 'title_case' """
        if not self.name:
            return
        word_list = self.name.split('_')
        return ' '.join([n.title() for n in word_list])


# Source definition for roles, as dictionary {name: description,}
STATIC_ROLES = {
    'admin':
        'Organization administrator, full access to studies and tasks '
        'within the organization',
    'researcher':
        'Creates and runs studies; access limited to studies created by '
        'or assigned to the researcher',
    'staff':
        'Clinic or research staff; access limited to assigned tasks',
    'superadmin':
        'Platform operator, manages organizations only',
}

ROLE = Enum('ROLE', {r.upper(): r for r in STATIC_ROLES})

# Roles eligible to own patients and receive task assignments
OWNER_ROLES = (ROLE.RESEARCHER.value, ROLE.STAFF.value)


def add_static_roles():
    """Seed database with default static roles

    Idempotent - run anytime to pick up any new roles in existing dbs

    """
    for r in STATIC_ROLES:
        if not Role.query.filter_by(name=r).first():
            db.session.add(Role(name=r, description=STATIC_ROLES[r]))
