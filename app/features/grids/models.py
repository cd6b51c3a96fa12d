"""
Relief grid and grid discussion models.
"""
import enum
from sqlalchemy import String, Text, Integer, Enum, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class GridStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
    COMPLETED = "completed"
    # In the trash; restorable until permanently deleted
    DELETED = "deleted"


class Grid(Base, TimestampMixin):
    """
    A relief work area that volunteers sign up for and donations go to.

    The creator and the assigned grid manager both count as owners.
    """
    __tablename__ = "grids"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    grid_type: Mapped[str] = mapped_column(String(50), nullable=False, default="manpower")
    disaster_area_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)

    volunteer_needed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    volunteer_registered: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    meeting_point: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # Contact person for the grid, see Facet.GRID_CONTACT
    contact_info: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[GridStatus] = mapped_column(
        Enum(GridStatus, name="grid_status", values_callable=lambda s: [x.value for x in s]),
        default=GridStatus.OPEN,
        nullable=False,
        index=True,
    )

    grid_manager_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_by_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    def __repr__(self) -> str:
        return f"<Grid(id={self.id}, code={self.code!r}, status={self.status.value})>"


class GridDiscussion(Base, TimestampMixin):
    __tablename__ = "grid_discussions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    grid_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("grids.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.id"), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_by_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.id"), nullable=True)

    def __repr__(self) -> str:
        return f"<GridDiscussion(id={self.id}, grid_id={self.grid_id})>"
