# test plugin
# https://docs.pytest.org/en/latest/writing_plugins.html#conftest-py-plugins
from copy import deepcopy
from types import SimpleNamespace

import pytest

from research_portal.config.config import TestConfig
from research_portal.database import db
from research_portal.factories.app import create_app
from research_portal.models.form import Form
from research_portal.models.organization import Organization
from research_portal.models.patient import Patient
from research_portal.models.role import ROLE, add_static_roles
from research_portal.models.study import Study
from research_portal.models.user import User
from tests import QUESTIONNAIRE, TEST_ORG_NAME


@pytest.fixture(scope="session")
def app():
    """Fixture to use as parameter in any test needing app access

    NB - use of pytest-flask ``client`` fixture is more common

    """
    return create_app(TestConfig)


@pytest.fixture(scope="session")
def app_logger(app):
    """fixture for functions requiring current_app.logger"""
    return app.logger


@pytest.fixture(autouse=True)
def initialized_db(app):
    """Create database schema and static roles, within an app context

    A fresh app context per test keeps login state and the session
    from leaking between tests.
    """
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    add_static_roles()
    db.session.commit()

    yield

    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def add_org():
    def add_org(name=TEST_ORG_NAME, active=True):
        org = Organization(name=name, active=active)
        db.session.add(org)
        db.session.commit()
        return org
    return add_org


@pytest.fixture
def org(add_org):
    return add_org()


@pytest.fixture
def other_org(add_org):
    return add_org(name='Other Clinic')


@pytest.fixture
def add_user(org):
    def add_user(email, role=None, organization=None, active=True):
        """Create a user holding role and add to test db, and return it"""
        organization = organization or org
        user = User(
            email=email, organization_id=organization.id, active=active)
        db.session.add(user)
        if role:
            user.add_role(role)
        db.session.commit()
        return user
    return add_user


@pytest.fixture
def admin(add_user):
    return add_user('admin@example.com', ROLE.ADMIN.value)


@pytest.fixture
def researcher(add_user):
    return add_user('researcher@example.com', ROLE.RESEARCHER.value)


@pytest.fixture
def staff(add_user):
    return add_user('staff@example.com', ROLE.STAFF.value)


@pytest.fixture
def add_patient(org):
    def add_patient(pid, owners=(), organization=None):
        organization = organization or org
        patient = Patient(pid=pid, organization_id=organization.id)
        patient.owners = list(owners)
        db.session.add(patient)
        db.session.commit()
        return patient
    return add_patient


@pytest.fixture
def add_study(org):
    def add_study(
            created_by, code='S1', staff=(), patients=(), organization=None,
            status='active'):
        organization = organization or org
        study = Study(
            code=code, title="Study {}".format(code), status=status,
            organization_id=organization.id, created_by_id=created_by.id)
        study.assigned_staff = list(staff)
        study.assigned_patients = list(patients)
        db.session.add(study)
        db.session.commit()
        return study
    return add_study


@pytest.fixture
def add_form():
    def add_form(study, schema=None, version='1', active=True):
        """Publish form under study, without fanning it out"""
        form = Form.from_json(
            {'schema': deepcopy(schema or QUESTIONNAIRE), 'version': version},
            study=study, created_by_id=study.created_by_id)
        form.active = active
        db.session.add(form)
        db.session.commit()
        return form
    return add_form


@pytest.fixture
def scenario(add_user, add_patient, add_study, add_form):
    """Study S, patient P1, assignees A1 (creator) and A2, form F

    Form F is published but not yet fanned out.
    """
    a1 = add_user('a1@example.com', ROLE.RESEARCHER.value)
    a2 = add_user('a2@example.com', ROLE.STAFF.value)
    p1 = add_patient('P-001', owners=[a1, a2])
    study = add_study(created_by=a1, staff=[a2], patients=[p1])
    form = add_form(study)

    return SimpleNamespace(a1=a1, a2=a2, p1=p1, study=study, form=form)


@pytest.fixture
def login(client):
    """Returns function to log the given user in to the test client"""
    def login(user):
        response = client.get(
            '/test/login', query_string={'user_id': user.id})
        assert response.status_code == 200
        return user
    return login
