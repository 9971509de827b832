from flask import current_app
import redis
from sqlalchemy import text

from ..database import db

HEALTHCHECK_FAILURE_STATUS_CODE = 200

##############################
# Healthcheck functions below
##############################


def create_redis(url):
    return redis.Redis.from_url(url)


def database_available():
    """Determines whether the database is available"""
    # Execute a simple SQLAlchemy query.
    # If it succeeds we assume the database is available.
    # If it fails we assume the database is not available.
    try:
        with db.engine.connect() as connection:
            connection.execute(text('SELECT 1'))
        return True, 'Database is available.'
    except Exception as e:
        return False, 'failed to connect to database. Error: {}'.format(e)


def redis_available():
    """Determines whether Redis is available"""
    # Ping redis. If it succeeds we assume redis
    # is available. Otherwise we assume
    # it's not available
    rs = create_redis(current_app.config["REDIS_URL"])
    try:
        rs.ping()
        return True, 'Redis is available.'
    except Exception as e:
        return False, 'Unable to connect to redis. Error {}'.format(e)


# The checks that determine the health
# of this service's dependencies
HEALTH_CHECKS = [
    database_available,
    redis_available,
]
