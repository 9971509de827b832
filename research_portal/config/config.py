"""Configuration"""
import os

SITE_CFG = 'site.cfg'


def best_sql_url():
    """Return compliant sql url from available environment variables"""
    env = os.environ
    if 'PGDATABASE' in env:
        return (
            'postgresql://{PGUSER}:{PGPASSWORD}@{PGHOST}/{PGDATABASE}'.format(
                PGUSER=env.get('PGUSER'), PGPASSWORD=env.get('PGPASSWORD'),
                PGHOST=env.get('PGHOST', 'localhost'),
                PGDATABASE=env.get('PGDATABASE')))
    return 'sqlite:///research_portal.db'


def testing_sql_url():
    """
    Return compliant sql url from available environment variables

    Defaults to an in-memory SQLite database.  If tests are being run
    with pytest-xdist workers against a shared server, a pre-existing
    database will be required for each worker, suffixed with the worker
    index.
    """

    test_db_url = os.environ.get('SQLALCHEMY_DATABASE_TEST_URI', 'sqlite://')

    worker_name = os.environ.get('PYTEST_XDIST_WORKER')
    if not worker_name or test_db_url.startswith('sqlite'):
        return test_db_url

    worker_index = "".join(char for char in worker_name if char.isdigit())
    return test_db_url + worker_index


class BaseConfig(object):
    """Base configuration - override in subclasses"""
    TESTING = False
    DEBUG = False

    SERVER_NAME = os.environ.get('SERVER_NAME')

    # We override REDIS_URL when testing now to avoid needing to
    # also reset the other variables using it as a default below
    REDIS_URL = os.environ.get(
        'REDIS_URL',
        'redis://localhost:6379/5'
        if os.environ.get('TESTING', 'false').lower() == 'true'
        else 'redis://localhost:6379/0',
    )

    BROKER_URL = os.environ.get(
        'BROKER_URL',
        REDIS_URL
    )
    CELERY_RESULT_BACKEND = os.environ.get(
        'CELERY_RESULT_BACKEND',
        REDIS_URL
    )
    CELERY_TASK_ALWAYS_EAGER = False

    # Run study fan-out via the celery queue rather than inline with
    # the mutating request
    DEFER_BACKFILL = (
        os.environ.get('DEFER_BACKFILL', 'false').lower() == 'true')

    # Days from backfill until due; unset means no due date
    DEFAULT_TASK_DUE_DAYS = int(
        os.environ['DEFAULT_TASK_DUE_DAYS']) if os.environ.get(
        'DEFAULT_TASK_DUE_DAYS') else None

    # Reject submitted answers that look like direct identifiers
    ANSWER_PII_SCREENING = (
        os.environ.get('ANSWER_PII_SCREENING', 'true').lower() == 'true')

    LOG_FOLDER = os.environ.get('LOG_FOLDER')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG').upper()
    LOG_SQL = os.environ.get('LOG_SQL', 'false').lower() == 'true'

    PROJECT = "research_portal"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'SQLALCHEMY_DATABASE_URI',
        best_sql_url()
    )

    SECRET_KEY = os.environ.get('SECRET_KEY')
    SYSTEM_TYPE = os.environ.get('SYSTEM_TYPE', 'development')

    # Only set cookies over "secure" channels (HTTPS) for non-dev deployments
    SESSION_COOKIE_SECURE = SYSTEM_TYPE.lower() != 'development'


class DefaultConfig(BaseConfig):
    """Default configuration"""
    DEBUG = os.environ.get('DEBUG', 'false').lower() == 'true'
    SQLALCHEMY_ECHO = False


class TestConfig(BaseConfig):
    """Testing configuration - used by unit tests"""
    TESTING = True
    SERVER_NAME = 'localhost:5005'
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_DATABASE_URI = testing_sql_url()
    CELERY_TASK_ALWAYS_EAGER = True
    DEFER_BACKFILL = False
    DEFAULT_TASK_DUE_DAYS = None
    ANSWER_PII_SCREENING = True

    SECRET_KEY = 'testing key'
