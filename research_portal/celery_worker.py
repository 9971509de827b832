#!/usr/bin/env python
"""Script to launch the celery worker

The celery worker is necessary to run any celery tasks, and requires
its own flask application instance to create the context necessary for
the flask background tasks to run.

Launch in the same virtual environment via

  $ celery -A research_portal.celery_worker.celery worker --loglevel=info

Expiry of overdue assignments runs hourly when celery beat is
launched alongside the worker.

"""
from celery.schedules import crontab

from . import tasks
from .factories.app import create_app
from .factories.celery import create_celery

app = create_app()
celery = create_celery(app)


@celery.on_after_configure.connect
def setup_periodic_tasks(sender, **kwargs):
    """Configure scheduled jobs in Celery"""
    tasks.logger.info("Adding expire_overdue_task to CeleryBeat")
    sender.add_periodic_task(
        crontab(minute=0), tasks.expire_overdue_task.s(),
        name='expire overdue assignments')
