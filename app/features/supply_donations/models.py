"""
Supply donation model.
"""
import enum
from sqlalchemy import String, Text, Integer, Enum, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class DonationStatus(str, enum.Enum):
    PLEDGED = "pledged"
    CONFIRMED = "confirmed"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class SupplyDonation(Base, TimestampMixin):
    """Supplies pledged to one grid by a donor."""
    __tablename__ = "supply_donations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    grid_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("grids.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)

    donor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    donor_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    donor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    donor_contact: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[DonationStatus] = mapped_column(
        Enum(DonationStatus, name="donation_status", values_callable=lambda s: [x.value for x in s]),
        default=DonationStatus.PLEDGED,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.id"), nullable=True)

    def __repr__(self) -> str:
        return f"<SupplyDonation(id={self.id}, grid_id={self.grid_id}, name={self.name!r})>"
