"""Module for additional datetime tools/utilities"""
from datetime import date, datetime, timedelta

from dateutil import parser
from flask import abort, current_app
import pytz


def as_fhir(obj):
    """For builtin types needing formatting help

    Returns obj as JSON formatted string, datetimes in UTC ISO format

    """
    if hasattr(obj, 'as_fhir'):
        return obj.as_fhir()
    if isinstance(obj, datetime):
        # Make SURE we only communicate UTC timezone aware objects
        tz = getattr(obj, 'tzinfo', None)
        if tz and tz != pytz.utc:
            current_app.logger.error("Datetime export of NON-UTC timezone")
        if not tz:
            utc_included = obj.replace(tzinfo=pytz.UTC)
        else:
            utc_included = obj
        # Chop microseconds from return (some clients can't handle parsing)
        final = utc_included.replace(microsecond=0)
        return final.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    return obj


class FHIR_datetime(object):
    """Utility class/namespace for working with FHIR like datetimes"""

    @staticmethod
    def as_fhir(obj):
        return as_fhir(obj)

    @staticmethod
    def parse(data, error_subject=None, none_safe=False):
        """Parse input string to generate a UTC datetime instance

        NB - date must be more recent than year 1900 or a ValueError
        will be raised.

        :param data: the datetime string to parse
        :param error_subject: Subject string to use in error message
        :param none_safe: set true to sanely handle None values
         (None in, None out).  By default a 400 is raised.

        :return: UTC datetime instance from given data

        """
        if none_safe and data is None:
            return None

        # As we use datetime.strftime for display, and it can't handle dates
        # older than 1900, treat all such dates as an error
        epoch = datetime.strptime('1900-01-01', '%Y-%m-%d')
        try:
            dt = parser.parse(data)
        except (TypeError, ValueError) as e:
            msg = "Unable to parse {}: {}".format(error_subject, e)
            current_app.logger.warning(msg)
            abort(400, msg)
        if dt.tzinfo:
            # Convert to UTC if necessary
            if dt.tzinfo != pytz.utc:
                dt = dt.astimezone(pytz.utc)
            # Delete tzinfo for safe comparisons with other non tz aware objs
            # All datetime values stored in the db are expected to be in
            # UTC, and timezone unaware.
            dt = dt.replace(tzinfo=None)

        if dt < epoch:
            abort(400, "Dates prior to year 1900 not supported")
        return dt


def utcnow_sans_micro():
    """Returns ``datetime.utcnow()`` with microseconds zeroed out"""
    return datetime.utcnow().replace(microsecond=0)


def due_date_from_days(days, start=None):
    """Return the due date ``days`` after start (now by default)

    None in, None out; lets configuration leave due dates unset.
    """
    if days is None:
        return None
    return (start or utcnow_sans_micro()) + timedelta(days=days)
