"""
Column types shared by the models
"""
from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator

from attendance_api.utils.datetime_utils import ensure_utc


class UTCDateTime(TypeDecorator):
    """
    DateTime(timezone=True) that always stores and returns UTC.

    SQLite keeps only the wall-clock digits of a bound datetime, so offsets are
    normalized to UTC before binding. Values read back are timezone-aware UTC.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        return ensure_utc(value)
