"""
Shared infrastructure for the session service.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging
  - constants.py: Roles, SessionStatus, OrderStatus, TableStatus, Limits

- shared.infrastructure: Database, locking and messaging
  - db.py: SQLAlchemy engine and sessions, safe_commit()
  - locks.py: Keyed lock registry for per-session serialization
  - correlation.py: Request id propagation
  - events.py: Event schema and publishers (Redis pub/sub or in-memory)

- shared.security: Authentication and rate limiting
  - auth.py: JWT signing/verification, current_staff_context, require_roles
  - password.py: Bcrypt hashing
  - rate_limit.py: slowapi limiter

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - money.py: Decimal helpers and session total arithmetic
  - schemas.py: Pydantic request/response schemas

IMPORT EXAMPLES:
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import SessionStatus
    from shared.utils.exceptions import NotFoundError, InvalidTransitionError
"""
