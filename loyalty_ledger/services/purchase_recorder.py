"""
Purchase recorder - applies purchase events to customer aggregates.

A purchase either updates the matching customer (total, visit count, last
visit) or creates the customer seeded with that purchase. The find-or-create
step is a single upsert in the customer store; if a concurrent writer wins
the creation race, the purchase is replayed once as a plain update.
"""
import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from loyalty_ledger.lib.clock import utcnow
from loyalty_ledger.lib.errors import ConflictError, StorageUnavailable, ValidationError
from loyalty_ledger.lib.logging import get_logger, log_with_context
from loyalty_ledger.lib.metrics import get_metrics_collector
from loyalty_ledger.models.customers import (
    Customer,
    MONEY_LIMIT,
    MONEY_SCALE,
    NAME_MAX_LENGTH,
    OWNER_ID_MAX_LENGTH,
    PHONE_NUMBER_MAX_LENGTH,
)
from loyalty_ledger.services.customer_store import CustomerStore, NewCustomerNames


logger = get_logger(__name__)

MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_SCALE)


def parse_amount(value: Any) -> Decimal:
    """
    Convert a purchase amount to a Decimal.
    
    Accepts Decimal, int, float and numeric strings. Rejects booleans,
    non-numeric text, NaN/infinity, negative values and amounts with more
    than four decimal places.
    
    Raises:
        ValidationError: If the amount is not a valid monetary value
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("Purchase amount must be a number", field="amount")
    
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError("Purchase amount must be finite", field="amount")
        amount = Decimal(str(value))
    elif isinstance(value, str):
        try:
            amount = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError("Purchase amount must be a number", field="amount")
    else:
        raise ValidationError("Purchase amount must be a number", field="amount")
    
    if not amount.is_finite():
        raise ValidationError("Purchase amount must be finite", field="amount")
    if amount < 0:
        raise ValidationError("Purchase amount cannot be negative", field="amount")
    if amount >= MONEY_LIMIT:
        raise ValidationError("Purchase amount is too large", field="amount")
    # Trailing zeros are fine; only digits that storage would drop are not.
    if amount != amount.quantize(MONEY_QUANTUM):
        raise ValidationError(
            f"Purchase amount allows at most {MONEY_SCALE} decimal places",
            field="amount",
        )
    return amount


def _require_text(value: Any, field: str, max_length: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    if len(value) > max_length:
        raise ValidationError(f"{field} is longer than {max_length} characters", field=field)
    return value


class PurchaseRecorder:
    """
    The only writer of customer aggregates.
    
    Safe to use from concurrent request handlers as long as each handler
    has its own session; correctness relies on the store's atomic upsert,
    not on any in-process lock.
    """
    
    def __init__(
        self,
        db_session: Session,
        clock: Callable[[], datetime] = utcnow,
        store: Optional[CustomerStore] = None,
    ):
        self.store = store or CustomerStore(db_session)
        self.clock = clock
        self.metrics = get_metrics_collector()
    
    def record_purchase(
        self,
        owner_id: str,
        phone_number: str,
        amount: Any,
        new_customer_names: Optional[NewCustomerNames] = None,
    ) -> Customer:
        """
        Apply one purchase for the customer identified by phone_number.
        
        Args:
            owner_id: Owning business
            phone_number: Identity key (exact string, no normalization)
            amount: Purchase amount, non-negative
            new_customer_names: First and last name, required only when no
                customer with this phone number exists yet
        
        Returns:
            The updated or newly created customer. A new customer has
            visit_count == 1.
        
        Raises:
            ValidationError: Malformed input or incomplete new-customer data
            ConflictError: Creation raced with another writer and the retry
                could not apply the purchase
            StorageUnavailable: The customer store is unreachable
        """
        try:
            owner_id = _require_text(owner_id, "owner_id", OWNER_ID_MAX_LENGTH)
            phone_number = _require_text(phone_number, "phone_number", PHONE_NUMBER_MAX_LENGTH)
            parsed_amount = parse_amount(amount)
            names = self._usable_names(new_customer_names)
        except ValidationError as exc:
            self.metrics.increment_rejections(reason=exc.field or "invalid")
            raise
        
        now = self.clock()
        try:
            try:
                customer = self.store.upsert_on_purchase(
                    owner_id, phone_number, parsed_amount, names, now
                )
            except ConflictError:
                # The other writer's customer now exists; this purchase is an update.
                log_with_context(
                    logger,
                    "warning",
                    "Customer created concurrently, retrying purchase as update",
                    owner_id=owner_id,
                )
                self.metrics.increment_conflicts(resolution="retried")
                customer = self.store.upsert_on_purchase(
                    owner_id, phone_number, parsed_amount, None, now,
                    create_if_missing=False,
                )
        except ConflictError:
            self.metrics.increment_conflicts(resolution="surfaced")
            raise
        except ValidationError as exc:
            self.metrics.increment_rejections(reason=exc.field or "invalid")
            raise
        except StorageUnavailable:
            self.metrics.increment_rejections(reason="storage_unavailable")
            raise
        
        created = customer.visit_count == 1
        self.metrics.increment_purchases(outcome="created" if created else "updated")
        log_with_context(
            logger,
            "info",
            "Purchase recorded",
            owner_id=owner_id,
            customer_id=str(customer.id),
            created=created,
            amount=str(parsed_amount),
        )
        return customer
    
    @staticmethod
    def _usable_names(names: Optional[NewCustomerNames]) -> Optional[NewCustomerNames]:
        """Drop blank names so they count as absent."""
        if names is None or not names.is_complete:
            return None
        if len(names.first_name.strip()) > NAME_MAX_LENGTH or len(names.last_name.strip()) > NAME_MAX_LENGTH:
            raise ValidationError(
                f"Customer names are limited to {NAME_MAX_LENGTH} characters",
                field="new_customer_names",
            )
        return names
