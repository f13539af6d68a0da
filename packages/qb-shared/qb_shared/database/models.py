"""SQLAlchemy models for the QueryBridge infrastructure tables.

Both tables live in the ``shared`` schema of the target database:

- ``runtime_state``: live widget and session-variable values, read by the
  subqueries the reference resolver emits into converted views/functions.
- ``control_column_map``: (form, control) -> (table, column) bindings written
  when a form or report is saved.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, DateTime, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

SHARED_SCHEMA = "shared"


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class RuntimeState(Base):
    """One live value per (session, table, column).

    Widgets on different forms bound to the same column share a row; the
    last write wins.
    """

    __tablename__ = "runtime_state"
    __table_args__ = (
        Index("ix_runtime_state_lookup", "table_name", "column_name"),
        {"schema": SHARED_SCHEMA},
    )

    session_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    table_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    column_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<RuntimeState(session_id='{self.session_id}', "
            f"table='{self.table_name}', column='{self.column_name}')>"
        )


class ControlColumnMap(Base):
    """Binding of a form/report control to the column it edits or displays."""

    __tablename__ = "control_column_map"
    __table_args__ = (
        Index("ix_control_column_map_target", "table_name", "column_name"),
        {"schema": SHARED_SCHEMA},
    )

    form_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    control_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    table_name: Mapped[str] = mapped_column(String(255), nullable=False)
    column_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<ControlColumnMap({self.form_name}.{self.control_name} -> "
            f"{self.table_name}.{self.column_name})>"
        )
