"""
Customer ledger API routes.

The only HTTP surface over the ledger core: record a purchase, look a
customer up by phone number, view the spend ranking and recent activity.
Amounts are rounded to cents here, never in the core.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from loyalty_ledger.api.dependencies import (
    bind_owner_log_context,
    get_customer_matcher,
    get_purchase_recorder,
    get_ranking_engine,
)
from loyalty_ledger.lib.errors import NotFoundException, ValidationError
from loyalty_ledger.models.customers import Customer
from loyalty_ledger.services.customer_matcher import CustomerMatcher
from loyalty_ledger.services.customer_store import NewCustomerNames
from loyalty_ledger.services.purchase_recorder import PurchaseRecorder
from loyalty_ledger.services.ranking_service import (
    DateRange,
    RankingEngine,
    money_display,
)


# Pydantic schemas
class PurchaseRequest(BaseModel):
    """Purchase event for one customer."""
    phone_number: str = Field(..., description="Customer phone number, matched exactly")
    amount: Decimal = Field(..., description="Purchase amount")
    first_name: Optional[str] = Field(default=None, description="Required for a new customer")
    last_name: Optional[str] = Field(default=None, description="Required for a new customer")
    
    model_config = {
        "json_schema_extra": {
            "example": {
                "phone_number": "+15551234567",
                "amount": "40.00",
                "first_name": "Ana",
                "last_name": "Silva",
            }
        }
    }


class CustomerResponse(BaseModel):
    """Customer with display-rounded total."""
    id: UUID
    first_name: str
    last_name: str
    phone_number: str
    total_purchases: Decimal
    visit_count: int
    last_visit: datetime


class RankedCustomerResponse(CustomerResponse):
    rank: int
    tier: Optional[str] = None


class RankingSummaryResponse(BaseModel):
    total_revenue: Decimal
    total_visits: int
    average_per_customer: Decimal
    customer_count: int


class RankingResponse(BaseModel):
    customers: List[RankedCustomerResponse]
    summary: RankingSummaryResponse
    truncated: bool


def _customer_fields(customer: Customer) -> dict:
    return {
        "id": customer.id,
        "first_name": customer.first_name,
        "last_name": customer.last_name,
        "phone_number": customer.phone_number,
        "total_purchases": money_display(customer.total_purchases),
        "visit_count": customer.visit_count,
        "last_visit": customer.last_visit,
    }


# Router
router = APIRouter(
    prefix="/owners/{owner_id}",
    tags=["customers"],
    dependencies=[Depends(bind_owner_log_context)],
)


@router.post("/purchases", response_model=CustomerResponse)
def record_purchase(
    owner_id: str,
    request: PurchaseRequest,
    response: Response,
    recorder: PurchaseRecorder = Depends(get_purchase_recorder),
) -> CustomerResponse:
    """
    Record a purchase.
    
    Updates the customer with this phone number, or creates them when the
    phone number is new (first_name and last_name are then required).
    
    Returns:
        201 with the new customer, or 200 with the updated customer
    """
    names = None
    if request.first_name is not None or request.last_name is not None:
        names = NewCustomerNames(request.first_name or "", request.last_name or "")
    
    customer = recorder.record_purchase(
        owner_id,
        request.phone_number,
        request.amount,
        new_customer_names=names,
    )
    if customer.visit_count == 1:
        response.status_code = status.HTTP_201_CREATED
    return CustomerResponse(**_customer_fields(customer))


@router.get("/customers/lookup", response_model=CustomerResponse)
def lookup_customer(
    owner_id: str,
    phone: str = Query("", description="Phone number as typed so far"),
    matcher: CustomerMatcher = Depends(get_customer_matcher),
) -> CustomerResponse:
    """Find a customer by exact phone number; 404 until the number matches."""
    customer = matcher.find(owner_id, phone)
    if customer is None:
        raise NotFoundException("Customer")
    return CustomerResponse(**_customer_fields(customer))


@router.get("/rankings", response_model=RankingResponse)
def get_rankings(
    owner_id: str,
    start_date: Optional[date] = Query(None, description="First day of last-visit filter"),
    end_date: Optional[date] = Query(None, description="Last day of last-visit filter, inclusive"),
    limit: Optional[int] = Query(None, ge=1, description="Top-N view size (default from settings)"),
    full: bool = Query(False, description="Return every ranked customer"),
    engine: RankingEngine = Depends(get_ranking_engine),
) -> RankingResponse:
    """
    Customers ranked by total spend, then visit count.
    
    Summary statistics cover every customer matching the date filter, even
    when the list is truncated.
    """
    if (start_date is None) != (end_date is None):
        raise ValidationError("start_date and end_date must be given together", field="date_range")
    date_range = DateRange(start_date, end_date) if start_date is not None else None
    
    if full:
        ranking = engine.rank(owner_id, date_range)
    elif limit is not None:
        ranking = engine.rank(owner_id, date_range, limit=limit)
    else:
        ranking = engine.top(owner_id, date_range)
    
    summary = ranking.summary
    return RankingResponse(
        customers=[
            RankedCustomerResponse(
                rank=entry.rank,
                tier=entry.tier.value if entry.tier else None,
                **_customer_fields(entry.customer),
            )
            for entry in ranking.entries
        ],
        summary=RankingSummaryResponse(
            total_revenue=money_display(summary.total_revenue),
            total_visits=summary.total_visits,
            average_per_customer=money_display(summary.average_per_customer),
            customer_count=summary.customer_count,
        ),
        truncated=ranking.is_truncated,
    )


@router.get("/activity", response_model=List[CustomerResponse])
def recent_activity(
    owner_id: str,
    limit: Optional[int] = Query(None, ge=1, description="Number of customers (default from settings)"),
    engine: RankingEngine = Depends(get_ranking_engine),
) -> List[CustomerResponse]:
    """Customers with the most recent purchases first."""
    return [
        CustomerResponse(**_customer_fields(customer))
        for customer in engine.recent_activity(owner_id, limit)
    ]
