"""
tasktracker.db

Persistence package (SQLAlchemy async).

Responsibilities:
- Provide ORM models, engine/session setup, repositories and the unit of work.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Nothing in this package commits on its own; transaction boundaries belong to
# `session_scope` or `UnitOfWork`.
