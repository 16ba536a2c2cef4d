from sqlalchemy import Numeric, String, TypeDecorator
from sqlalchemy.dialects import postgresql
import uuid

from app.core.money import to_money


class GUID(TypeDecorator):
    """
    Platform-independent GUID type.

    Uses PostgreSQL's UUID type when available, otherwise uses
    String(36) to store string representation of UUID.
    """
    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(postgresql.UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == 'postgresql':
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        # Stored as string in SQLite and others
        return str(value if isinstance(value, uuid.UUID) else uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return value if isinstance(value, uuid.UUID) else uuid.UUID(value)


class Money(TypeDecorator):
    """
    Fixed-point monetary amount with two decimal places.

    Values are quantized on the way in and on the way out, so a backend
    that stores NUMERIC loosely (SQLite) still hands back exact Decimals.
    Malformed values raise DataIntegrityError instead of being coerced.
    """
    impl = Numeric(15, 2)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return to_money(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return to_money(value)
