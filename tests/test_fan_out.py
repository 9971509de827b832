"""Unit test module for assignment fan-out and backfill"""
from datetime import datetime, timedelta

from mock import patch
import pytest
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import BadRequest, NotFound

from research_portal.database import db
from research_portal.models.assignment import (
    OPEN,
    SUBMITTED,
    Assignment,
    insert_if_absent,
)
from research_portal.models.audit import Audit
from research_portal.models.fan_out import (
    assign_form,
    backfill,
    backfill_study,
    backfill_study_form,
    fan_out,
)
from research_portal.models.form import Form
from research_portal.models.logical_task import LogicalTask
from research_portal.models.role import ROLE
from tests import QUESTIONNAIRE


def test_backfill_creates_one_row_per_pair(scenario):
    s = scenario
    assert backfill(s.study.id) == 2

    rows = Assignment.query.order_by(Assignment.assignee_id).all()
    assert [(r.study_id, r.form_id, r.patient_id, r.assignee_id)
            for r in rows] == [
        (s.study.id, s.form.id, s.p1.id, s.a1.id),
        (s.study.id, s.form.id, s.p1.id, s.a2.id)]
    assert all(r.status == OPEN for r in rows)
    assert all(r.organization_id == s.study.organization_id for r in rows)


def test_backfill_idempotent(scenario):
    assert backfill(scenario.study.id) == 2
    assert backfill(scenario.study.id) == 0
    assert backfill(scenario.study.id) == 0
    assert Assignment.query.count() == 2


def test_backfill_cartesian_product(
        scenario, add_user, add_patient, add_form):
    s = scenario
    a3 = add_user('a3@example.com', ROLE.STAFF.value)
    p2 = add_patient('P-002')
    s.study.assigned_staff.append(a3)
    s.study.assigned_patients.append(p2)
    add_form(s.study, version='2')
    db.session.commit()

    # 2 patients x 3 assignees x 2 forms
    assert backfill(s.study.id) == 12
    assert Assignment.query.count() == 12


def test_backfill_without_patients(scenario):
    s = scenario
    s.study.assigned_patients = []
    db.session.commit()
    assert backfill(s.study.id) == 0
    assert Assignment.query.count() == 0


def test_backfill_skips_inactive_forms(scenario):
    scenario.form.active = False
    db.session.commit()
    assert backfill_study(scenario.study) == 0


def test_backfill_unknown_study():
    with pytest.raises(NotFound):
        backfill(9999)


def test_backfill_study_form_requires_study_form(
        scenario, add_user, add_study, add_form):
    other_study = add_study(created_by=scenario.a1, code='S2')
    other_form = add_form(other_study)
    with pytest.raises(ValueError):
        backfill_study_form(scenario.study, other_form)


def test_backfill_default_due_date(app, scenario, monkeypatch):
    monkeypatch.setitem(app.config, 'DEFAULT_TASK_DUE_DAYS', 7)
    before = datetime.utcnow()
    backfill(scenario.study.id)
    for row in Assignment.query:
        assert row.due_at is not None
        assert before + timedelta(days=6) < row.due_at
        assert row.due_at <= datetime.utcnow() + timedelta(days=7)


def test_backfill_without_due_days(scenario):
    backfill(scenario.study.id)
    assert all(row.due_at is None for row in Assignment.query)


def test_backfill_audited(scenario):
    backfill(scenario.study.id, user_id=scenario.a1.id)
    audit = Audit.query.filter_by(_context='assignment').one()
    assert audit.user_id == scenario.a1.id
    assert 'created 2 assignments' in audit.comment

    # nothing created, nothing audited
    backfill(scenario.study.id)
    assert Audit.query.filter_by(_context='assignment').count() == 1


def test_late_joiner_created_open(scenario, add_user):
    s = scenario
    backfill(s.study.id)
    Assignment.query.update({Assignment.status: SUBMITTED})
    db.session.commit()

    a3 = add_user('a3@example.com', ROLE.STAFF.value)
    s.study.assigned_staff.append(a3)
    db.session.commit()
    assert backfill(s.study.id) == 1

    late = Assignment.query.filter_by(assignee_id=a3.id).one()
    assert late.status == OPEN
    task = LogicalTask(Assignment.group_members(late.group_key))
    assert task.status == SUBMITTED
    assert task.assignee_ids == sorted([s.a1.id, s.a2.id, a3.id])


def test_removed_owner_keeps_history(scenario):
    s = scenario
    backfill(s.study.id)
    s.study.assigned_staff = []
    db.session.commit()

    assert backfill(s.study.id) == 0
    assert Assignment.query.filter_by(assignee_id=s.a2.id).count() == 1


def test_duplicate_key_race_is_benign(scenario):
    s = scenario
    race = IntegrityError(
        "INSERT INTO assignments", {},
        Exception("UNIQUE constraint failed: assignments.organization_id"))
    with patch(
            'research_portal.models.fan_out.insert_if_absent',
            side_effect=race):
        assert fan_out(s.study, s.form, [s.p1.id], [s.a1.id]) == 0


def test_race_on_later_form_keeps_earlier_rows(scenario, add_form):
    s = scenario
    first_id = s.form.id
    second_id = add_form(s.study, version='2').id
    race = IntegrityError(
        "INSERT INTO assignments", {},
        Exception("UNIQUE constraint failed: assignments.organization_id"))

    def insert_then_race(rows):
        if rows[0]['form_id'] == second_id:
            raise race
        return insert_if_absent(rows)

    with patch(
            'research_portal.models.fan_out.insert_if_absent',
            side_effect=insert_then_race):
        assert backfill(s.study.id) == 2

    db.session.expunge_all()
    assert Assignment.query.filter_by(form_id=first_id).count() == 2
    assert Assignment.query.filter_by(form_id=second_id).count() == 0
    assert Audit.query.one().comment.endswith("created 2 assignments")


def test_other_integrity_errors_propagate(scenario):
    s = scenario
    failure = IntegrityError(
        "INSERT INTO assignments", {},
        Exception("FOREIGN KEY constraint failed"))
    with patch(
            'research_portal.models.fan_out.insert_if_absent',
            side_effect=failure):
        with pytest.raises(IntegrityError):
            fan_out(s.study, s.form, [s.p1.id], [s.a1.id])


def test_fan_out_nothing_to_do(scenario):
    s = scenario
    assert fan_out(s.study, s.form, [], [s.a1.id]) == 0
    assert fan_out(s.study, s.form, [s.p1.id], []) == 0


def test_assign_form_to_owners(scenario, add_patient):
    s = scenario
    p2 = add_patient('P-002', owners=[s.a2])
    assert assign_form(s.form, [s.p1, p2]) == 3
    db.session.commit()
    assert sorted(
        (r.patient_id, r.assignee_id) for r in Assignment.query) == sorted([
            (s.p1.id, s.a1.id), (s.p1.id, s.a2.id), (p2.id, s.a2.id)])


def test_assign_form_explicit_assignee(scenario):
    s = scenario
    due = datetime.utcnow().replace(microsecond=0) + timedelta(days=3)
    assert assign_form(s.form, [s.p1], assignee=s.a2, due_at=due) == 1
    db.session.commit()
    row = Assignment.query.one()
    assert row.assignee_id == s.a2.id
    assert row.due_at == due

    # shares identity with backfill, no duplicate
    assert backfill(s.study.id) == 1


def test_assign_form_requires_owner(scenario, add_patient):
    orphan = add_patient('P-404')
    with pytest.raises(BadRequest):
        assign_form(scenario.form, [orphan])


def test_assign_form_owner_check_precedes_writes(scenario, add_patient):
    orphan = add_patient('P-404')
    with pytest.raises(BadRequest):
        assign_form(scenario.form, [scenario.p1, orphan])
    assert Assignment.query.count() == 0


def test_assign_form_race_keeps_earlier_patients(scenario, add_patient):
    s = scenario
    p2 = add_patient('P-002', owners=[s.a2])
    p2_id = p2.id
    race = IntegrityError(
        "INSERT INTO assignments", {},
        Exception("UNIQUE constraint failed: assignments.organization_id"))

    def insert_then_race(rows):
        if rows[0]['patient_id'] == p2_id:
            raise race
        return insert_if_absent(rows)

    with patch(
            'research_portal.models.fan_out.insert_if_absent',
            side_effect=insert_then_race):
        assert assign_form(s.form, [s.p1, p2]) == 2

    db.session.expunge_all()
    assert Assignment.query.count() == 2
    assert Assignment.query.filter_by(patient_id=p2_id).count() == 0


def test_assign_form_inactive_owner(scenario, add_user, add_patient):
    gone = add_user('gone@example.com', ROLE.STAFF.value, active=False)
    patient = add_patient('P-405', owners=[gone])
    with pytest.raises(BadRequest):
        assign_form(scenario.form, [patient])


def test_assign_base_form_rejected(scenario):
    base = Form.from_json(
        {'schema': QUESTIONNAIRE},
        organization_id=scenario.study.organization_id,
        created_by_id=scenario.a1.id)
    db.session.add(base)
    db.session.commit()
    with pytest.raises(BadRequest):
        assign_form(base, [scenario.p1])
