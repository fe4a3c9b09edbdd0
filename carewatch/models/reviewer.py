from sqlalchemy import Integer, String, Enum
from sqlalchemy.orm import Mapped, mapped_column
import enum

from carewatch.db.base import Base


class ReviewerRole(str, enum.Enum):
    counselor = "counselor"
    center_admin = "center_admin"


class Reviewer(Base):
    """Staff account that works the risk inbox."""

    __tablename__ = "reviewers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[str] = mapped_column(
        Enum(ReviewerRole, name="reviewer_role_enum"),
        nullable=False,
        default=ReviewerRole.counselor,
    )
    # NULL until the account redeems a center invite
    center_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
