"""State persistence layer (PostgreSQL in production, SQLite locally)."""

from commerce_core.state.database import get_engine, get_session, get_session_factory_for
from commerce_core.state.repository import (
    CartRepository,
    CourseRepository,
    EnrollmentRepository,
    PaymentRepository,
    SubscriptionHistoryRepository,
    TenantRepository,
    UserRepository,
)

__all__ = [
    "CartRepository",
    "CourseRepository",
    "EnrollmentRepository",
    "PaymentRepository",
    "SubscriptionHistoryRepository",
    "TenantRepository",
    "UserRepository",
    "get_engine",
    "get_session",
    "get_session_factory_for",
]
