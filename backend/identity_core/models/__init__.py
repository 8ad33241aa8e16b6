"""SQLAlchemy ORM models.

All models are exported from this module for convenient imports:
    from identity_core.models import Account, Role, Provider

- base.py: Base, TimestampMixin
- account.py: Account (sole identity record), Provider, Role
"""

from identity_core.models.account import Account, Provider, Role
from identity_core.models.base import Base, TimestampMixin

__all__ = [
    "Account",
    "Base",
    "Provider",
    "Role",
    "TimestampMixin",
]
