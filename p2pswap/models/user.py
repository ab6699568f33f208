"""
User model — the identity record owned by the external identity service.

The core only reads it: ``country_of_origin`` and ``country_of_residence``
define the remittance corridor a user's listings belong to.
"""

from uuid import UUID, uuid4
from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column

from p2pswap.database import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[UUID] = mapped_column(
        Uuid, unique=True, index=True, nullable=False, default=uuid4,
    )

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Corridor
    country_of_origin: Mapped[str] = mapped_column(String(100), nullable=False)
    country_of_residence: Mapped[str] = mapped_column(String(100), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<User {self.uuid} {self.country_of_origin}/{self.country_of_residence}>"


@event.listens_for(User, "init")
def _set_user_defaults(target, args, kwargs):
    if "uuid" not in kwargs:
        target.uuid = uuid4()
    if "created_at" not in kwargs:
        target.created_at = datetime.now(timezone.utc)
