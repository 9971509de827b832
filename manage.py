""" Defines a series of scripts for running server and maintenance

FLASK_APP=manage.py flask --help

"""
import click

from research_portal.audit import auditable_event
from research_portal.database import db
from research_portal.date_tools import FHIR_datetime
from research_portal.factories.app import create_app
from research_portal.models.assignment import expire_overdue_assignments
from research_portal.models.fan_out import backfill
from research_portal.models.organization import Organization
from research_portal.models.role import add_static_roles
from research_portal.models.study import Study
from research_portal.models.user import User

app = create_app()


@app.cli.command()
def sync():
    """Synchronize database with latest schema and persistence data.

    Idempotent function takes necessary steps to build tables and run
    `seed`.  Safe to run on existing or brand new databases.

    To re/create the database, [delete and] create within the DBMS itself,
    then invoke this function.
    """
    db.create_all()
    seed()


@app.cli.command(name="seed")
def seed_command():
    """Seed database with required data"""
    seed()


def seed():
    """Actual seed function

    NB this is defined separately so it can also be called internally,
    i.e. from sync

    """
    add_static_roles()
    db.session.commit()


@click.option('--name', '-n', help="name of the new organization")
@app.cli.command()
def add_org(name):
    """Add new organization (tenant) as specified"""
    if not name:
        raise click.UsageError("requires an organization name")
    org = Organization(name=name)
    db.session.add(org)
    db.session.commit()
    click.echo("added {}".format(org))


@click.option('--email', '-e', help="email address for new user")
@click.option('--role', '-r', help="Comma separated role(s) for new user")
@click.option('--org-id', '-o', type=int, help="organization id of new user")
@app.cli.command()
def add_user(email, role, org_id):
    """Add new user as specified """
    if not email:
        raise click.UsageError("requires an email")
    if org_id is not None and not db.session.get(Organization, org_id):
        raise click.BadParameter(
            "organization {} not found".format(org_id), param_hint='org-id')

    user = User(email=email, organization_id=org_id)
    db.session.add(user)
    roles = role.split(',') if role else []
    for r in roles:
        user.add_role(r.strip())
    db.session.commit()
    auditable_event(
        "new account generated for {} via cli".format(user),
        user_id=user.id, context='login')
    click.echo("added {} with roles {}".format(user, roles))


@click.option(
    '--study-id', '-s', type=int, default=None,
    help="limit to the given study; all studies by default")
@app.cli.command(name="backfill")
def backfill_command(study_id):
    """Fan out study forms to any missing assignments

    Idempotent; rows already present are skipped.

    """
    if study_id is not None:
        study_ids = [study_id]
    else:
        study_ids = [
            s.id for s in Study.query.order_by(Study.id).with_entities(
                Study.id)]
    total = sum(backfill(study_id) for study_id in study_ids)
    click.echo("{} assignments created across {} studies".format(
        total, len(study_ids)))


@click.option(
    '--as-of', '-a', default=None,
    help="expire assignments due before this datetime; now by default")
@app.cli.command()
def expire_overdue(as_of):
    """Flag open assignments past their due date as expired"""
    if as_of is not None:
        as_of = FHIR_datetime.parse(as_of, error_subject='as-of')
    count = expire_overdue_assignments(as_of)
    db.session.commit()
    click.echo("{} assignments expired".format(count))
