"""
tasktracker.db.repositories

Repository package.

Responsibilities:
- Group data-access repositories, one per entity family.
"""

# Package marker; repositories are imported directly from submodules.


# --- Module Notes -----------------------------------------------------------
# Repositories flush but never commit; the caller owns the transaction.
