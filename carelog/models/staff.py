"""Staff model."""

from __future__ import annotations

import builtins

from sqlalchemy import ForeignKey, Integer, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from carelog.db import Base


class Staff(Base):
    """
    Represents a staff member of a store.
    """

    __tablename__ = "staff"

    #: The staff ID.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    #: The store ID.
    store_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False
    )
    #: The staff member's display name.
    name: Mapped[str] = mapped_column(String, nullable=False)

    @classmethod
    def list(cls, session: Session, store_id: int) -> builtins.list[Staff]:
        """
        Get all staff of a store, ordered by name.

        Args:
            session: SQLAlchemy session
            store_id: Store ID

        Returns:
            List of staff ordered by name

        """
        return builtins.list(
            session.scalars(
                select(cls).where(cls.store_id == store_id).order_by(cls.name, cls.id)
            ).all()
        )

    def to_json(self) -> dict:
        """Serialize staff member to ``{id, name}``."""
        return {"id": self.id, "name": self.name}
