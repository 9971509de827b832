"""Tasks module

All tasks run via external message queue (via celery) are defined
within.

NB: a celery worker must be started for these to ever return.  See
`celery_worker.py`

"""
from celery import shared_task
from celery.utils.log import get_task_logger

from .database import db
from .date_tools import FHIR_datetime
from .models.assignment import expire_overdue_assignments
from .models.fan_out import backfill

# To debug, stop the worker and start in console:
#   celery -A research_portal.celery_worker.celery worker --loglevel=debug
#
# Import rdb and use like pdb:
#   from celery.contrib import rdb
#   rdb.set_trace()

logger = get_task_logger(__name__)


@shared_task(name='research_portal.tasks.backfill_study_task')
def backfill_study_task(study_id, user_id=None):
    """Fan out assignments for every active form of the study"""
    logger.debug("backfill_study_task for study %s", study_id)
    inserted = backfill(study_id, user_id=user_id)
    logger.info(
        "backfill_study_task inserted %d assignments for study %s",
        inserted, study_id)
    return inserted


@shared_task(name='research_portal.tasks.expire_overdue_task')
def expire_overdue_task(as_of=None):
    """Flag open assignments past due as expired

    :param as_of: optional datetime string, defaults to now
    """
    if as_of is not None:
        as_of = FHIR_datetime.parse(as_of, error_subject='as_of')
    count = expire_overdue_assignments(as_of)
    db.session.commit()
    return count
