"""SQLAlchemy models package.

All ORM classes are imported here so `Base.metadata` is complete regardless of
import order (schema creation in tests and the --init-db job flag rely on it).
"""

from app.models import (  # noqa: F401
    benchmark_proposal,
    intelligence_audit_entry,
    price_change_event,
)
