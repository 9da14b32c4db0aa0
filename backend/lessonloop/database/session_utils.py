"""
Dialect helpers for repository code that issues dialect-specific SQL or reads
dialect-specific errors.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Index
from sqlalchemy.orm import Session

ON_CONFLICT_DIALECTS = ("postgresql", "sqlite")


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """Name of the dialect the session is bound to, or ``default`` if unbound."""
    bind = session.get_bind()
    dialect = getattr(bind, "dialect", None)
    name: Optional[str] = getattr(dialect, "name", None)
    return name or default


def on_conflict_dialect(session: Session) -> Optional[str]:
    """The dialect name if it supports ``INSERT ... ON CONFLICT DO NOTHING``, else None."""
    name = get_dialect_name(session)
    return name if name in ON_CONFLICT_DIALECTS else None


def is_unique_violation(error: Exception, index: Index) -> bool:
    """
    True if ``error`` is a unique violation of ``index``.

    psycopg2 reports the constraint name; SQLite only lists the index columns.
    """
    orig = getattr(error, "orig", error)
    constraint = getattr(getattr(orig, "diag", None), "constraint_name", None)
    if constraint:
        return bool(constraint == index.name)
    message = str(orig)
    if index.name and index.name in message:
        return True
    table = index.table.name if index.table is not None else ""
    columns = ", ".join(f"{table}.{column.name}" for column in index.columns)
    return "UNIQUE constraint failed" in message and message.rstrip().endswith(columns)
