"""SQLAlchemy ORM models for shared budgets, groups and invitations."""

import datetime as dt
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _enum_column(enum_cls: type[Enum]) -> SQLEnum:
    # Persist the lowercase values, not the member names
    return SQLEnum(enum_cls, values_callable=lambda members: [m.value for m in members])


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TransactionType(str, Enum):
    """Direction of money for transactions and categories."""

    INCOME = "income"
    EXPENSE = "expense"


class MemberRole(str, Enum):
    """Role of a user inside a group."""

    ADMIN = "admin"
    MEMBER = "member"


class InvitationStatus(str, Enum):
    """Invitation lifecycle state. Only PENDING has outgoing transitions."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class BudgetPeriod(str, Enum):
    """Budget period. Only DAILY limits are evaluated."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Profile(Base):
    """Account data owned by the auth collaborator plus the personal aggregate limit."""

    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(200))
    total_expenditure_limit: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<Profile {self.user_id} {self.email}>"


class Group(Base):
    """A shared budgeting space. The creator is its first admin member."""

    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    total_expenditure_limit: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    members: Mapped[list["GroupMember"]] = relationship(
        back_populates="group", cascade="all, delete-orphan"
    )
    invitations: Mapped[list["GroupInvitation"]] = relationship(
        back_populates="group", cascade="all, delete-orphan"
    )
    budgets: Mapped[list["GroupBudget"]] = relationship(
        back_populates="group", cascade="all, delete-orphan"
    )
    # No delete cascade: group transactions fall back to personal ones
    transactions: Mapped[list["Transaction"]] = relationship(back_populates="group")

    def __repr__(self) -> str:
        return f"<Group {self.name}>"


class GroupMember(Base):
    """Membership of a user in a group."""

    __tablename__ = "group_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[MemberRole] = mapped_column(
        _enum_column(MemberRole), default=MemberRole.MEMBER, nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    # Relationships
    group: Mapped["Group"] = relationship(back_populates="members")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member"),
        Index("ix_group_members_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<GroupMember {self.group_id}:{self.user_id} {self.role.value}>"


class GroupInvitation(Base):
    """Invitation of an email address into a group."""

    __tablename__ = "group_invitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    invited_by: Mapped[str] = mapped_column(String(64), nullable=False)
    invited_email: Mapped[str] = mapped_column(String(320), nullable=False)
    invited_user_id: Mapped[Optional[str]] = mapped_column(String(64))
    status: Mapped[InvitationStatus] = mapped_column(
        _enum_column(InvitationStatus), default=InvitationStatus.PENDING, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    group: Mapped["Group"] = relationship(back_populates="invitations")

    __table_args__ = (
        UniqueConstraint("group_id", "invited_email", name="uq_group_invitation_email"),
        Index("ix_group_invitations_user", "invited_user_id"),
        Index("ix_group_invitations_email", "invited_email"),
    )

    def __repr__(self) -> str:
        return f"<GroupInvitation {self.group_id} {self.invited_email} {self.status.value}>"


class Category(Base):
    """Per-user category. Several users may own categories with the same name."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        _enum_column(TransactionType), default=TransactionType.EXPENSE, nullable=False
    )
    color: Mapped[str] = mapped_column(String(20), default="#3b82f6", nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(50), default="folder")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    transactions: Mapped[list["Transaction"]] = relationship(back_populates="category")
    budgets: Mapped[list["Budget"]] = relationship(
        back_populates="category", cascade="all, delete-orphan"
    )
    group_budgets: Mapped[list["GroupBudget"]] = relationship(back_populates="category")

    __table_args__ = (Index("ix_categories_user", "user_id"),)

    def __repr__(self) -> str:
        return f"<Category {self.name} ({self.user_id})>"


class Transaction(Base):
    """Personal transaction, or a group transaction when ``group_id`` is set."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL")
    )
    group_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("groups.id", ondelete="SET NULL")
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    type: Mapped[TransactionType] = mapped_column(_enum_column(TransactionType), nullable=False)
    # dt.date: the attribute name shadows ``date`` inside this class body
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    category: Mapped[Optional["Category"]] = relationship(back_populates="transactions")
    group: Mapped[Optional["Group"]] = relationship(back_populates="transactions")

    __table_args__ = (
        Index("ix_transactions_user", "user_id"),
        Index("ix_transactions_group", "group_id"),
        Index("ix_transactions_date", "date"),
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.date} {self.amount} {self.type.value}>"


class Budget(Base):
    """Personal per-category limit."""

    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    period: Mapped[BudgetPeriod] = mapped_column(
        _enum_column(BudgetPeriod), default=BudgetPeriod.DAILY, nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    category: Mapped["Category"] = relationship(back_populates="budgets")

    __table_args__ = (Index("ix_budgets_user_category", "user_id", "category_id"),)

    def __repr__(self) -> str:
        return f"<Budget {self.user_id} cat={self.category_id} {self.amount}>"


class GroupBudget(Base):
    """Group per-category limit, keyed by category name at the application level."""

    __tablename__ = "group_budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    period: Mapped[BudgetPeriod] = mapped_column(
        _enum_column(BudgetPeriod), default=BudgetPeriod.DAILY, nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    group: Mapped["Group"] = relationship(back_populates="budgets")
    category: Mapped["Category"] = relationship(back_populates="group_budgets")

    __table_args__ = (Index("ix_group_budgets_group", "group_id"),)

    def __repr__(self) -> str:
        return f"<GroupBudget {self.group_id} cat={self.category_id} {self.amount}>"


def normalize_category_name(name: str | None) -> str:
    """Key used to reconcile identically-named categories across owners."""
    return " ".join((name or "").split()).casefold()
