"""Store model."""

from __future__ import annotations

from sqlalchemy import Integer, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from carelog.db import Base


class Store(Base):
    """
    Represents an animal-care facility.
    """

    __tablename__ = "stores"

    #: The store ID.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    #: The store name.
    name: Mapped[str] = mapped_column(String, nullable=False)
    #: The store address.
    address: Mapped[str | None] = mapped_column(String, nullable=True)
    #: Comma-separated registered business types (daycare, grooming, hotel).
    business_types: Mapped[str] = mapped_column(String, nullable=False, default="")

    @classmethod
    def get(cls, session: Session, store_id: int) -> Store | None:
        """
        Get a store by ID.

        Args:
            session: SQLAlchemy session
            store_id: Store ID

        Returns:
            Store or None if not found

        """
        return session.get(cls, store_id)

    @classmethod
    def ensure(cls, session: Session, store_id: int, name: str = "My Store") -> Store:
        """
        Get a store by ID, creating it if it does not exist yet.

        Args:
            session: SQLAlchemy session
            store_id: Store ID

        Keyword Args:
            name: Name to give a newly created store

        Returns:
            The store

        """
        store = cls.get(session, store_id)
        if store is None:
            store = cls(id=store_id, name=name)
            session.add(store)
            session.commit()
        return store

    @classmethod
    def first(cls, session: Session) -> Store | None:
        """Get the store with the lowest ID, if any."""
        return session.scalar(select(cls).order_by(cls.id).limit(1))

    @property
    def business_type_list(self) -> list[str]:
        """The business types as a list."""
        return [item.strip() for item in self.business_types.split(",") if item.strip()]

    def to_json(self) -> dict:
        """
        Serialize store to a JSON-compatible dictionary.

        Returns:
            Dictionary containing store data

        """
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "business_types": self.business_type_list,
        }
