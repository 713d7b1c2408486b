"""
Customer store - durable, owner-scoped storage of customer records.

The only shared mutable resource of the ledger. Purchases are applied with
a single-statement UPDATE that increments the aggregates in the database,
and new customers are inserted under the (owner_id, phone_number) unique
constraint, so two writers can never both create the same identity.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import NoReturn, Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import (
    DataError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import Session

from loyalty_ledger.lib.errors import ConflictError, StorageUnavailable, ValidationError
from loyalty_ledger.lib.logging import get_logger, log_with_context
from loyalty_ledger.models.customers import Customer, MONEY_LIMIT


logger = get_logger(__name__)

# Errors meaning the database itself could not be used, as opposed to a
# statement being rejected.
STORAGE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


@dataclass(frozen=True)
class NewCustomerNames:
    """Display names supplied when a purchase may create a customer."""
    first_name: str
    last_name: str
    
    @property
    def is_complete(self) -> bool:
        return bool(self.first_name and self.first_name.strip()) and bool(
            self.last_name and self.last_name.strip()
        )


class CustomerStore:
    """SQLAlchemy-backed customer storage scoped per owner."""
    
    def __init__(self, db_session: Session):
        self.db = db_session
    
    def find_by_phone(self, owner_id: str, phone_number: str) -> Optional[Customer]:
        """Return the customer with exactly this phone number under owner_id, if any."""
        stmt = select(Customer).where(
            Customer.owner_id == owner_id,
            Customer.phone_number == phone_number,
        ).execution_options(populate_existing=True)
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except STORAGE_ERRORS as exc:
            self._abandon(exc)
    
    def list_by_owner(self, owner_id: str) -> list[Customer]:
        """All customers of owner_id, in whatever order storage returns them."""
        stmt = select(Customer).where(Customer.owner_id == owner_id).execution_options(
            populate_existing=True
        )
        try:
            return list(self.db.execute(stmt).scalars().all())
        except STORAGE_ERRORS as exc:
            self._abandon(exc)
    
    def upsert_on_purchase(
        self,
        owner_id: str,
        phone_number: str,
        amount: Decimal,
        names_if_new: Optional[NewCustomerNames],
        at: datetime,
        create_if_missing: bool = True,
    ) -> Customer:
        """
        Apply one purchase to the customer keyed by (owner_id, phone_number).
        
        Runs in a single transaction: the aggregates of an existing customer
        are incremented in place, otherwise a new customer is inserted and
        seeded with this purchase. Nothing is committed when the call fails.
        
        Args:
            owner_id: Owning business
            phone_number: Identity key, compared exactly
            amount: Validated, non-negative purchase amount
            names_if_new: Names for a customer created by this purchase
            at: Purchase timestamp (naive UTC)
            create_if_missing: When False, only an existing customer is updated
        
        Returns:
            The customer as committed
        
        Raises:
            ValidationError: No customer exists and names are missing, or the
                customer's total would outgrow the stored precision
            ConflictError: Another writer created this customer concurrently,
                or create_if_missing is False and the customer is absent
            StorageUnavailable: The database could not be reached
        """
        customer: Optional[Customer] = None
        try:
            customer = self._apply_to_existing(owner_id, phone_number, amount, at)
            if customer is None and create_if_missing and names_if_new is not None:
                customer = self._insert_new(owner_id, phone_number, amount, names_if_new, at)
            if customer is not None and customer.total_purchases >= MONEY_LIMIT:
                self._reject_total(owner_id)
            
            if customer is None:
                self.db.rollback()
            else:
                self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            log_with_context(
                logger,
                "info",
                "Duplicate customer creation rejected by unique constraint",
                owner_id=owner_id,
            )
            raise ConflictError(owner_id) from exc
        except DataError as exc:
            self._reject_total(owner_id, exc)
        except STORAGE_ERRORS as exc:
            self._abandon(exc)
        
        if customer is None:
            if not create_if_missing:
                raise ConflictError(owner_id)
            raise ValidationError("incomplete new-customer data", field="new_customer_names")
        return customer
    
    def _apply_to_existing(
        self,
        owner_id: str,
        phone_number: str,
        amount: Decimal,
        at: datetime,
    ) -> Optional[Customer]:
        """Increment aggregates in one UPDATE; None when no row matched."""
        stmt = (
            update(Customer)
            .where(
                Customer.owner_id == owner_id,
                Customer.phone_number == phone_number,
            )
            .values(
                total_purchases=Customer.total_purchases + amount,
                visit_count=Customer.visit_count + 1,
                # last_visit never moves backwards
                last_visit=case(
                    (Customer.last_visit < at, at),
                    else_=Customer.last_visit,
                ),
                updated_at=at,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount == 0:
            return None
        
        refreshed = (
            select(Customer)
            .where(
                Customer.owner_id == owner_id,
                Customer.phone_number == phone_number,
            )
            .execution_options(populate_existing=True)
        )
        return self.db.execute(refreshed).scalar_one()
    
    def _insert_new(
        self,
        owner_id: str,
        phone_number: str,
        amount: Decimal,
        names: NewCustomerNames,
        at: datetime,
    ) -> Customer:
        customer = Customer(
            owner_id=owner_id,
            phone_number=phone_number,
            first_name=names.first_name.strip(),
            last_name=names.last_name.strip(),
            total_purchases=amount,
            visit_count=1,
            last_visit=at,
            created_at=at,
            updated_at=at,
        )
        self.db.add(customer)
        self.db.flush()
        return customer
    
    def _reject_total(self, owner_id: str, exc: Optional[Exception] = None) -> NoReturn:
        """Roll back a purchase that would push the total past MONEY_LIMIT."""
        self.db.rollback()
        log_with_context(
            logger,
            "warning",
            "Purchase rejected, customer total out of range",
            owner_id=owner_id,
        )
        raise ValidationError(
            "customer total would exceed storage limit", field="amount"
        ) from exc
    
    def _abandon(self, exc: Exception) -> NoReturn:
        """Roll back and surface a database failure as StorageUnavailable."""
        try:
            self.db.rollback()
        except STORAGE_ERRORS:
            logger.warning("Rollback failed on an unreachable database")
        log_with_context(logger, "error", "Customer store unavailable", error=str(exc))
        raise StorageUnavailable() from exc
