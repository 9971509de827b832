"""User model and principal lookup

Account management (passwords, registration, tokens) is handled outside
this system; a User here is the authenticated principal the task engine
authorizes against, and the identity tasks are assigned to.
"""
from datetime import datetime

from flask import abort
from flask_login import UserMixin, current_user as flask_login_current_user
from sqlalchemy import UniqueConstraint

from ..database import db
from .role import ROLE, Role


class User(db.Model, UserMixin):
    __tablename__ = 'users'  # Override default 'user'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    _display_name = db.Column('display_name', db.String(120))
    category = db.Column(db.String(120))
    organization_id = db.Column(
        db.ForeignKey('organizations.id', ondelete='cascade'), index=True)
    active = db.Column(
        'is_active', db.Boolean(), nullable=False, default=True)
    registered = db.Column(db.DateTime, default=datetime.utcnow)

    organization = db.relationship('Organization')
    roles = db.relationship('Role', secondary='user_roles',
                            backref=db.backref('users', lazy='dynamic'))

    def __str__(self):
        """Print friendly format for logging, etc."""
        return "user {0.id}".format(self)

    @property
    def is_active(self):
        """flask-login hook; inactive users can't authenticate"""
        return bool(self.active)

    @property
    def display_name(self):
        return self._display_name or self.email

    @display_name.setter
    def display_name(self, value):
        self._display_name = value

    @property
    def role(self):
        """Return the most privileged role name held

        Users typically hold a single role; should more be present, the
        broadest wins so authorization checks see one role per principal.
        """
        for name in (
                ROLE.SUPERADMIN.value, ROLE.ADMIN.value,
                ROLE.RESEARCHER.value, ROLE.STAFF.value):
            if self.has_role(name):
                return name

    def has_role(self, *roles):
        """Given one or more roles by name, true if user has at least one"""
        users_roles = set((r.name for r in self.roles))
        for item in roles:
            if item in users_roles:
                return True
        return False

    def add_role(self, role_name):
        role = Role.query.filter_by(name=role_name).first()
        if not role:
            abort(400, "Unknown role {}".format(role_name))
        if role in self.roles:
            abort(409, "Can't add role already applied to user")
        self.roles.append(role)

    def as_json(self):
        """Abbreviated representation, used wherever a user is embedded"""
        return {
            'id': self.id,
            'email': self.email,
            'display_name': self.display_name,
            'role': self.role,
            'category': self.category}


class UserRoles(db.Model):
    __tablename__ = 'user_roles'
    id = db.Column(db.Integer(), primary_key=True)
    user_id = db.Column(
        db.Integer(),
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False)
    role_id = db.Column(
        db.Integer(),
        db.ForeignKey(
            'roles.id',
            ondelete='CASCADE'),
        nullable=False)

    __table_args__ = (UniqueConstraint('user_id', 'role_id',
                                       name='_user_role'),)

    def __str__(self):
        """Print friendly format for logging, etc."""
        return "UserRole {0.user_id}:{0.role_id}".format(self)


def current_user():
    """Obtain the "current" user object

    returns current user object, or None if not logged in
    """
    if (flask_login_current_user and
            flask_login_current_user.is_authenticated):
        return flask_login_current_user._get_current_object()
    return None


def require_user(*roles):
    """Return the current user, enforcing an authenticated session

    :param roles: if given, the current user must hold at least one
    :raises :py:exc:`werkzeug.exceptions.Unauthorized`: if not logged in
    :raises :py:exc:`werkzeug.exceptions.Forbidden`: if roles were named
      and the user holds none of them

    """
    user = current_user()
    if user is None:
        abort(401, "Authentication required")
    if roles and not user.has_role(*roles):
        abort(403, "Inadequate role")
    if not user.has_role(ROLE.SUPERADMIN.value) and (
            user.organization is None or not user.organization.active):
        abort(403, "Organization is not active")
    return user


def load_user(user_id):
    """flask-login user loader"""
    with db.session.no_autoflush:
        return db.session.get(User, int(user_id))
