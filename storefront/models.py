# storefront/models.py
import datetime
import math
import re
from enum import Enum

from bson import ObjectId

from . import bcrypt

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

USER_ROLES = ('customer', 'admin')

MAX_BSON_INT = 2 ** 63 - 1


def utcnow():
    """Current UTC time at the millisecond precision BSON keeps."""
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def is_email(value):
    return isinstance(value, str) and bool(EMAIL_RE.match(value))


def serialize_doc(value):
    """Converts a Mongo document (or any nested value) into JSON-safe data.

    ObjectIds become strings and datetimes ISO-8601 strings. The ``_id`` key is
    kept so clients see the same shape the store holds.
    """
    if isinstance(value, dict):
        return {key: serialize_doc(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_doc(item) for item in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime.datetime):
        # pymongo hands back naive datetimes that are already UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return value.isoformat()
    return value


def is_number(value):
    """True for finite floats and ints BSON can store; bools, NaN and infinities are rejected."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return -MAX_BSON_INT <= value <= MAX_BSON_INT
    return isinstance(value, float) and math.isfinite(value)


def parse_pagination(args, default_limit):
    """Reads ``page``/``limit`` query args, falling back to defaults on junk input."""
    try:
        page = int(args.get('page', 1))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get('limit', default_limit))
    except (TypeError, ValueError):
        limit = default_limit
    if page < 1:
        page = 1
    if limit < 1:
        limit = default_limit
    return page, limit


def page_count(total, limit):
    return math.ceil(total / limit) if limit else 0


class User:
    """Represents a user document; the password hash never leaves this class."""

    def __init__(self, id=None, name=None, email=None, password_hash=None, role='customer',
                 location=None, createdAt=None, updatedAt=None):
        self.id = id
        self.name = name
        self.email = email
        self.password_hash = password_hash
        self.role = role or 'customer'
        self.location = location
        self.createdAt = createdAt if createdAt else utcnow()
        self.updatedAt = updatedAt if updatedAt else self.createdAt

    @classmethod
    def from_document(cls, doc):
        return cls(
            id=doc.get('_id'),
            name=doc.get('name'),
            email=doc.get('email'),
            password_hash=doc.get('password_hash'),
            role=doc.get('role', 'customer'),
            location=doc.get('location'),
            createdAt=doc.get('createdAt'),
            updatedAt=doc.get('updatedAt'),
        )

    @staticmethod
    def hash_password(password):
        return bcrypt.generate_password_hash(password).decode('utf-8')

    def set_password(self, password):
        self.password_hash = self.hash_password(password)

    def check_password(self, password):
        """Checks the provided password against the stored bcrypt hash."""
        if not self.password_hash or not isinstance(password, str):
            return False
        # Newer bcrypt releases refuse inputs past 72 bytes
        if len(password.encode('utf-8')) > 72:
            return False
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == 'admin'

    def to_document(self):
        doc = {
            'name': self.name,
            'email': self.email,
            'password_hash': self.password_hash,
            'role': self.role,
            'createdAt': self.createdAt,
            'updatedAt': self.updatedAt,
        }
        if self.location is not None:
            doc['location'] = self.location
        if self.id is not None:
            doc['_id'] = self.id
        return doc

    def to_dict(self):
        """Returns user data as a dictionary, excluding the password hash."""
        return serialize_doc({
            '_id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'location': self.location,
            'createdAt': self.createdAt,
            'updatedAt': self.updatedAt,
        })


class OrderStatus(str, Enum):
    PENDING = 'pending'
    PAID = 'paid'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'


ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

# Timestamp field stamped when an order enters the status
ORDER_STATUS_STAMPS = {
    OrderStatus.PAID: 'paidAt',
    OrderStatus.DELIVERED: 'deliveredAt',
}


def can_transition(current, new):
    """True if an order in status ``current`` may move to ``new``."""
    try:
        return OrderStatus(new) in ORDER_STATUS_TRANSITIONS[OrderStatus(current)]
    except ValueError:
        return False
