"""
Volunteer registration model and its status lifecycle.
"""
import enum
from sqlalchemy import String, Text, Enum, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class RegistrationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


# Allowed next states; completed, declined and cancelled are terminal
TRANSITIONS: dict[RegistrationStatus, frozenset[RegistrationStatus]] = {
    RegistrationStatus.PENDING: frozenset({
        RegistrationStatus.CONFIRMED, RegistrationStatus.DECLINED, RegistrationStatus.CANCELLED,
    }),
    RegistrationStatus.CONFIRMED: frozenset({RegistrationStatus.ARRIVED, RegistrationStatus.CANCELLED}),
    RegistrationStatus.ARRIVED: frozenset({RegistrationStatus.COMPLETED, RegistrationStatus.CANCELLED}),
    RegistrationStatus.COMPLETED: frozenset(),
    RegistrationStatus.DECLINED: frozenset(),
    RegistrationStatus.CANCELLED: frozenset(),
}

# Statuses counted in Grid.volunteer_registered
COUNTED_STATUSES = (RegistrationStatus.CONFIRMED, RegistrationStatus.ARRIVED, RegistrationStatus.COMPLETED)


def can_transition(current: RegistrationStatus, target: RegistrationStatus) -> bool:
    return current == target or target in TRANSITIONS[current]


class VolunteerRegistration(Base, TimestampMixin):
    """A volunteer's sign-up on one grid."""
    __tablename__ = "volunteer_registrations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    grid_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("grids.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # The registered volunteer, when they have an account
    user_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.id"), nullable=True, index=True)

    volunteer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    volunteer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    volunteer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[RegistrationStatus] = mapped_column(
        Enum(RegistrationStatus, name="registration_status", values_callable=lambda s: [x.value for x in s]),
        default=RegistrationStatus.PENDING,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.id"), nullable=True)

    def __repr__(self) -> str:
        return f"<VolunteerRegistration(id={self.id}, grid_id={self.grid_id}, status={self.status.value})>"
