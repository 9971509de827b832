"""Unit test module for logical task aggregation"""
from datetime import datetime, timedelta
from itertools import permutations

import pytest

from research_portal.models.assignment import (
    EXPIRED,
    OPEN,
    SUBMITTED,
    Assignment,
    GroupKey,
)
from research_portal.models.logical_task import (
    LogicalTask,
    aggregate_due,
    aggregate_status,
    group_assignments,
    logical_tasks,
)


def make_assignment(
        id, assignee_id, patient_id=1, form_id=1, status=OPEN, due_at=None):
    return Assignment(
        id=id, organization_id=1, study_id=1, form_id=form_id,
        patient_id=patient_id, assignee_id=assignee_id, status=status,
        due_at=due_at, created_at=datetime.utcnow())


@pytest.mark.parametrize('statuses, expected', [
    ((OPEN, SUBMITTED), SUBMITTED),
    ((OPEN, EXPIRED), EXPIRED),
    ((OPEN,), OPEN),
    ((EXPIRED, SUBMITTED, OPEN), SUBMITTED),
    ((), OPEN),
])
def test_aggregate_status_precedence(statuses, expected):
    assert aggregate_status(statuses) == expected


def test_aggregate_status_order_independent():
    for ordering in permutations((OPEN, EXPIRED, SUBMITTED, OPEN)):
        assert aggregate_status(ordering) == SUBMITTED
    for ordering in permutations((OPEN, EXPIRED, OPEN)):
        assert aggregate_status(ordering) == EXPIRED


def test_aggregate_due_earliest_non_null():
    now = datetime.utcnow()
    earliest = now + timedelta(days=1)
    later = now + timedelta(days=5)
    assert aggregate_due([None, later, earliest, None]) == earliest
    assert aggregate_due([later]) == later


def test_aggregate_due_all_null():
    assert aggregate_due([None, None]) is None
    assert aggregate_due([]) is None


def test_group_assignments_by_key():
    rows = [
        make_assignment(1, assignee_id=10, patient_id=1),
        make_assignment(2, assignee_id=10, patient_id=2),
        make_assignment(3, assignee_id=11, patient_id=1),
        make_assignment(4, assignee_id=11, patient_id=2, form_id=2),
    ]
    groups = group_assignments(rows)
    assert list(groups.keys()) == [
        GroupKey(1, 1, 1, 1), GroupKey(1, 1, 1, 2), GroupKey(1, 1, 2, 2)]
    assert [a.id for a in groups[GroupKey(1, 1, 1, 1)]] == [1, 3]


def test_logical_task_aggregates():
    soon = datetime.utcnow() + timedelta(days=2)
    members = [
        make_assignment(7, assignee_id=12, status=OPEN),
        make_assignment(5, assignee_id=10, status=SUBMITTED, due_at=soon),
        make_assignment(6, assignee_id=11, status=EXPIRED),
    ]
    task = LogicalTask(members)
    assert task.id == 7  # seed is first member encountered
    assert task.key == GroupKey(1, 1, 1, 1)
    assert task.status == SUBMITTED
    assert task.due_at == soon
    assert task.assignee_ids == [10, 11, 12]
    assert task.member_ids == [5, 6, 7]


def test_logical_task_assignees_distinct():
    members = [
        make_assignment(1, assignee_id=11),
        make_assignment(2, assignee_id=10),
        make_assignment(3, assignee_id=11, form_id=1),
    ]
    assert LogicalTask(members).assignee_ids == [10, 11]


def test_logical_task_requires_members():
    with pytest.raises(ValueError):
        LogicalTask([])


def test_logical_tasks_one_per_group():
    rows = [
        make_assignment(1, assignee_id=10, patient_id=1),
        make_assignment(2, assignee_id=11, patient_id=1, status=SUBMITTED),
        make_assignment(3, assignee_id=10, patient_id=2),
    ]
    tasks = logical_tasks(rows)
    assert [t.id for t in tasks] == [1, 3]
    assert [t.status for t in tasks] == [SUBMITTED, OPEN]

    # arrival order alters the seed, never the aggregate values
    reversed_tasks = logical_tasks(list(reversed(rows)))
    assert sorted(t.status for t in reversed_tasks) == sorted(
        t.status for t in tasks)
    assert sorted(t.member_ids for t in reversed_tasks) == sorted(
        t.member_ids for t in tasks)
