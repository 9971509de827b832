"""Research portal application factory"""

import json_logging
import logging
from logging import handlers
import os
import sys

from flask import Flask, jsonify, request
from healthcheck import HealthCheck
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException, ServiceUnavailable

from ..audit import configure_audit_log
from ..config.config import SITE_CFG, DefaultConfig, TestConfig
from ..database import db
from ..extensions import login_manager
from ..views.auth import auth
from ..views.healthcheck import HEALTH_CHECKS, HEALTHCHECK_FAILURE_STATUS_CODE
from ..views.study import study_api
from ..views.task import task_api
from .celery import create_celery

DEFAULT_BLUEPRINTS = (
    auth,
    study_api,
    task_api,
)


def create_app(config=None, app_name=None, blueprints=None):
    """Returns the configured flask app"""
    if app_name is None:
        app_name = DefaultConfig.PROJECT
    if blueprints is None:
        blueprints = DEFAULT_BLUEPRINTS

    app = Flask(app_name, instance_relative_config=True)
    configure_app(app, config)
    configure_extensions(app)
    configure_error_handlers(app)
    configure_blueprints(app, blueprints=blueprints)
    configure_logging(app)
    configure_audit_log(app)
    configure_healthcheck(app)
    return app


def configure_app(app, config):
    """Load successive configs - overriding defaults"""
    app.config.from_object(DefaultConfig)
    app.config.from_pyfile(SITE_CFG, silent=True)
    app.config.from_pyfile('application.cfg', silent=True)

    if config:
        app.config.from_object(config)
    elif os.environ.get('TESTING', 'false').lower() == 'true':
        app.config.from_object(TestConfig)


def configure_extensions(app):
    """Bind extensions to application"""
    # flask-sqlalchemy - the ORM / DB used
    db.init_app(app)

    # flask-login - principal for every request
    login_manager.init_app(app)

    # celery - deferred fan-out and scheduled expiry
    create_celery(app)


def configure_error_handlers(app):
    """Render API errors as JSON

    Errors raised beneath ``/api/`` return ``{"message", "code"}``, plus
    ``reference`` when validation names the offending location.  An
    unreachable database surfaces as 503 so callers may retry.

    """
    @app.errorhandler(HTTPException)
    def http_error(error):
        if not request.path.startswith('/api/'):
            return error
        body = {'message': error.description, 'code': error.code}
        reference = getattr(error, 'reference', None)
        if reference:
            body['reference'] = reference
        return jsonify(body), error.code

    @app.errorhandler(OperationalError)
    def database_unavailable(error):
        app.logger.error("database unavailable: %s", error)
        db.session.rollback()
        return http_error(ServiceUnavailable(
            "Database unavailable, retry later"))


def configure_blueprints(app, blueprints):
    """Register blueprints with application"""
    for blueprint in blueprints:
        app.register_blueprint(blueprint)


def configure_logging(app):  # pragma: no cover
    """Configure logging."""
    # Avoid duplicate logging.  Multiple handlers implies logging
    # has already been configured
    if len(app.logger.handlers) > 1:
        return

    level = getattr(logging, app.config['LOG_LEVEL'].upper())
    from ..tasks import logger as task_logger
    task_logger.setLevel(level)
    app.logger.setLevel(level)

    if app.config.get('LOG_SQL'):
        sql_logger = logging.getLogger('sqlalchemy.engine')
        sql_logger.setLevel(logging.INFO)
        sql_logger.addHandler(logging.StreamHandler(sys.stdout))

    if app.testing:
        return

    # Configure for JSON logging
    if json_logging._current_framework is None:
        # Ugly internal ref to prevent multiple calls to `init_flask`
        json_logging.init_flask(enable_json=True)
        json_logging.init_request_instrument(app)

    if not app.config.get('LOG_FOLDER'):
        # Write logs to stdout by default
        return

    if not os.path.exists(app.config['LOG_FOLDER']):
        os.mkdir(app.config['LOG_FOLDER'])

    info_log = os.path.join(app.config['LOG_FOLDER'], 'info.log')
    # For WSGI servers, the log file is only writable by www-data
    # This prevents users from being able to run other management
    # commands as themselves.  If current user can't write to the
    # info_log, bail out - relying on stdout/stderr
    try:
        with open(info_log, 'a+'):
            pass
    except IOError:
        print(
            "Can't open log file '%s', use stdout" % info_log,
            "Set LOG_FOLDER to a writable directory in configuration file",
            file=sys.stderr,
        )
        return

    info_file_handler = handlers.RotatingFileHandler(
        info_log, maxBytes=1000000, backupCount=20)
    info_file_handler.setLevel(level)
    info_file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s: %(message)s '
        '[in %(pathname)s:%(lineno)d]')
    )

    app.logger.addHandler(info_file_handler)
    task_logger.addHandler(info_file_handler)


def configure_healthcheck(app):
    """Configure the API used to check the health of our dependencies"""
    # Initializes the /healthcheck API that returns
    # the health of the service's dependencies based
    # on the results of the given checks
    health = HealthCheck(
        failed_status=HEALTHCHECK_FAILURE_STATUS_CODE,
        log_on_failure=False,
    )
    for check in HEALTH_CHECKS:
        health.add_check(check)
    app.healthcheck = health
    app.add_url_rule(
        '/healthcheck', 'healthcheck', view_func=lambda: health.run())
