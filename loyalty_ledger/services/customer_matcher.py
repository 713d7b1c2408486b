"""
Customer matcher - resolves a phone number to an existing customer.

Called on every keystroke while a phone number is typed, so partial and
empty input must simply produce no match. Phone numbers are compared as
exact strings; "+15551234567" and "555-123-4567" are different customers.
"""
from typing import Optional

from sqlalchemy.orm import Session

from loyalty_ledger.models.customers import Customer, PHONE_NUMBER_MAX_LENGTH
from loyalty_ledger.services.customer_store import CustomerStore


class CustomerMatcher:
    """Read-only phone lookup scoped to one owner."""
    
    def __init__(self, db_session: Session, store: Optional[CustomerStore] = None):
        self.store = store or CustomerStore(db_session)
    
    def find(self, owner_id: str, phone_number: Optional[str]) -> Optional[Customer]:
        """
        Find the customer of owner_id whose phone number equals phone_number.
        
        Returns None (not found) for empty, partial or oversized input; the
        caller proceeds to create a customer in that case.
        """
        if not owner_id or not isinstance(phone_number, str) or not phone_number.strip():
            return None
        if len(phone_number) > PHONE_NUMBER_MAX_LENGTH:
            return None
        return self.store.find_by_phone(owner_id, phone_number)
