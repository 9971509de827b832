from celery import Celery, Task, current_app, signals
from flask import has_app_context
import logging
import sys


@signals.setup_logging.connect
def on_setup_logging(**kwargs):
    # prefer loglevel from flask app config (injected into celery app)
    # over celery CLI option
    log_level = current_app.conf.get('LOG_LEVEL') or kwargs.get('loglevel')

    logger = logging.getLogger('celery')
    logger.setLevel(log_level)
    logger.addHandler(logging.StreamHandler(sys.stdout))
    logger.propagate = True
    logger = logging.getLogger('celery.app.trace')
    logger.setLevel(log_level)
    logger.propagate = True


def create_celery(app):
    """Return the celery instance bound to the flask app, creating once"""
    if 'celery' in app.extensions:
        return app.extensions['celery']

    app.logger.debug("Create celery w/ backends {} & {}".format(
        app.config['CELERY_RESULT_BACKEND'],
        app.config['BROKER_URL']))

    class ContextTask(Task):
        abstract = True

        def __call__(self, *args, **kwargs):
            # eager tasks run within the caller's context and session
            if has_app_context():
                return self.run(*args, **kwargs)
            with app.app_context():
                return self.run(*args, **kwargs)

    celery = Celery(
        app.import_name,
        backend=app.config['CELERY_RESULT_BACKEND'],
        broker=app.config['BROKER_URL'],
        task_cls=ContextTask,
    )
    celery.conf.update(
        task_always_eager=app.config['CELERY_TASK_ALWAYS_EAGER'],
        task_eager_propagates=True,
        LOG_LEVEL=app.config['LOG_LEVEL'],
    )
    celery.set_default()

    app.extensions['celery'] = celery
    return celery
