"""
Customer model - a business's customer and their purchase aggregates.
"""
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from loyalty_ledger.lib.clock import utcnow
from loyalty_ledger.lib.db import Base


PHONE_NUMBER_MAX_LENGTH = 32
OWNER_ID_MAX_LENGTH = 64
NAME_MAX_LENGTH = 100

# Precision and scale of the stored accumulator; display rounding to cents
# happens elsewhere.
MONEY_PRECISION = 14
MONEY_SCALE = 4
# Exclusive ceiling for any stored amount, totals included.
MONEY_LIMIT = Decimal(10) ** (MONEY_PRECISION - MONEY_SCALE)


class Customer(Base):
    """
    Customer entity, owned by exactly one business.
    
    The phone number is the identity key and is unique per owner. The
    aggregate columns are only written by the purchase recorder.
    """
    __tablename__ = "customers"
    
    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    
    # Tenant scope
    owner_id: Mapped[str] = mapped_column(
        String(OWNER_ID_MAX_LENGTH),
        nullable=False,
        index=True,
    )
    
    # Identity key, matched as an exact string
    phone_number: Mapped[str] = mapped_column(
        String(PHONE_NUMBER_MAX_LENGTH),
        nullable=False,
    )
    
    # Display names
    first_name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    last_name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    
    # Aggregates
    total_purchases: Mapped[Decimal] = mapped_column(
        Numeric(MONEY_PRECISION, MONEY_SCALE),
        nullable=False,
        default=Decimal("0"),
    )
    visit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_visit: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        nullable=False,
        index=True,
    )
    
    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    
    __table_args__ = (
        UniqueConstraint("owner_id", "phone_number", name="uq_customers_owner_phone"),
        CheckConstraint("total_purchases >= 0", name="customer_total_non_negative"),
        CheckConstraint("visit_count >= 1", name="customer_visit_count_positive"),
    )
    
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
    
    def __repr__(self) -> str:
        return (
            f"<Customer(id={self.id}, owner={self.owner_id}, phone={self.phone_number}, "
            f"total={self.total_purchases}, visits={self.visit_count})>"
        )
