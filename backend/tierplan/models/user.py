"""User model."""

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tierplan.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from tierplan.models.deposit import Deposit
    from tierplan.models.plan import UserPlanProgress


class UserRole(str, Enum):
    """Capability attached to an authenticated caller."""

    USER = "user"
    ADMIN = "admin"


class User(Base, UUIDMixin, TimestampMixin):
    """User account with referral and financial state.

    ``balance`` and ``total_earned`` are only ever changed with atomic
    ``UPDATE ... SET balance = balance + :x`` statements.
    """

    __tablename__ = "users"

    # Profile
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20),
        default=UserRole.USER.value,
        server_default=UserRole.USER.value,
        nullable=False,
    )

    # Referral
    referral_code: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
        comment="Own 8-char code; legacy UUID codes are replaced once",
    )
    referred_by_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    referred_by_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    referral_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        server_default=text("0"),
        nullable=False,
    )

    # Money
    balance: Mapped[Decimal] = mapped_column(
        default=Decimal("0"),
        server_default=text("0"),
        nullable=False,
        comment="Withdrawable funds",
    )
    total_earned: Mapped[Decimal] = mapped_column(
        default=Decimal("0"),
        server_default=text("0"),
        nullable=False,
        comment="Monotonic sum of every balance credit",
    )

    # Relationships
    referred_by: Mapped["User | None"] = relationship(
        "User",
        remote_side="User.id",
        foreign_keys=[referred_by_id],
    )
    deposits: Mapped[list["Deposit"]] = relationship(
        "Deposit",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    plan_progresses: Mapped[list["UserPlanProgress"]] = relationship(
        "UserPlanProgress",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def __repr__(self) -> str:
        return f"<User {self.email}>"
