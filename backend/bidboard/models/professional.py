"""
BidBoard Backend - Professional Profile Model
==============================================

What:  ORM model for `professional_profiles`, the track record the scorer reads.
Who:   Maintained by the professional aggregate; read-only here.
"""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, Numeric, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from bidboard.database import Base


class ProfessionalProfile(Base):
    __tablename__ = "professional_profiles"

    professional_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)

    experience_years: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    # Mean of received review ratings, 1 to 5; NULL until the first review
    average_rating: Mapped[Optional[Decimal]] = mapped_column(Numeric(3, 2), nullable=True)

    # Percentage of accepted projects completed, 0 to 100
    completion_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True,
        default=Decimal("0"),
    )

    def __repr__(self) -> str:
        return f"<ProfessionalProfile(professional_id={self.professional_id})>"
