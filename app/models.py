"""ORM models (SQLAlchemy 2.0).

Defines the single persisted entity of the directory: an advocate.
"""

from datetime import datetime, timezone
from typing import List

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY
from .db import Base

# text[] on Postgres (GIN-indexable); a JSON list everywhere else
StringList = ARRAY(Text).with_variant(JSON(), "sqlite")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Advocate(Base):
    """ORM model for an advocate listed in the directory.

    Columns:
        id: Generated integer primary key.
        first_name, last_name: Name parts; the pair is unique.
        city: City of practice.
        degree: Degree held (e.g., "MD", "PhD", "MSW").
        years_of_experience: Years in practice, 0 to 50.
        phone_number: Contact number stored as digits.
        specialties: Ordered list of specialty labels (may be empty).
        created_at: Creation timestamp.
    """

    __tablename__ = "advocates"
    __table_args__ = (
        UniqueConstraint("first_name", "last_name", name="advocates_unique_name_idx"),
        Index("advocates_first_name_idx", "first_name"),
        Index("advocates_last_name_idx", "last_name"),
        Index("advocates_city_idx", "city"),
        Index("advocates_degree_idx", "degree"),
        Index("advocates_years_of_experience_idx", "years_of_experience"),
        Index("advocates_full_name_idx", "first_name", "last_name"),
        Index("advocates_specialties_idx", "specialties", postgresql_using="gin"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(Text, nullable=False)
    degree: Mapped[str] = mapped_column(Text, nullable=False)
    years_of_experience: Mapped[int] = mapped_column(Integer, nullable=False)
    phone_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    specialties: Mapped[List[str]] = mapped_column(
        StringList, nullable=False, default=list
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
