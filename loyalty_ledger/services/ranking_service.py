"""
Ranking service for the customer leaderboard.

Rankings are recomputed from the current customer rows on every request;
no rank state is stored. Customers are ordered by total spend, then visit
count, then id, so the order is total and repeatable. Rank is the 1-based
position in that order, and the top five positions carry a tier label.
"""
import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from loyalty_ledger.lib.errors import ValidationError
from loyalty_ledger.lib.logging import get_logger
from loyalty_ledger.lib.metrics import get_metrics_collector
from loyalty_ledger.lib.settings import settings
from loyalty_ledger.models.customers import Customer
from loyalty_ledger.services.customer_store import CustomerStore


logger = get_logger(__name__)

CENT = Decimal("0.01")


class RankTier(str, enum.Enum):
    """Label attached to the top ranks."""
    TOP_CUSTOMER = "top_customer"
    TOP_3 = "top_3"
    TOP_5 = "top_5"


def tier_for_rank(rank: int) -> Optional[RankTier]:
    """Rank 1 is the top customer, ranks 2-3 and 4-5 get secondary tiers."""
    if rank == 1:
        return RankTier.TOP_CUSTOMER
    if 2 <= rank <= 3:
        return RankTier.TOP_3
    if 4 <= rank <= 5:
        return RankTier.TOP_5
    return None


def money_display(value: Decimal) -> Decimal:
    """Round a monetary value to cents for presentation."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class DateRange:
    """
    Inclusive calendar-day range over last_visit.
    
    The end day is included in full: any last_visit on that calendar day
    matches, up to its last microsecond. date.max is a valid end.
    """
    start: date
    end: date
    
    def __post_init__(self):
        # datetime is a date subclass; only the calendar day matters
        if isinstance(self.start, datetime):
            object.__setattr__(self, "start", self.start.date())
        if isinstance(self.end, datetime):
            object.__setattr__(self, "end", self.end.date())
        if self.start > self.end:
            raise ValidationError("start_date must not be after end_date", field="date_range")
    
    def contains(self, moment: datetime) -> bool:
        return self.start <= moment.date() <= self.end


@dataclass(frozen=True)
class RankedCustomer:
    rank: int
    tier: Optional[RankTier]
    customer: Customer


@dataclass(frozen=True)
class RankingSummary:
    """Totals over every customer that passed the date filter."""
    total_revenue: Decimal = Decimal("0")
    total_visits: int = 0
    average_per_customer: Decimal = Decimal("0")
    customer_count: int = 0


@dataclass(frozen=True)
class Ranking:
    entries: list[RankedCustomer] = field(default_factory=list)
    summary: RankingSummary = field(default_factory=RankingSummary)
    
    @property
    def is_truncated(self) -> bool:
        return len(self.entries) < self.summary.customer_count


def ranking_sort_key(customer: Customer) -> tuple:
    return (-customer.total_purchases, -customer.visit_count, str(customer.id))


def summarize(customers: list[Customer]) -> RankingSummary:
    if not customers:
        return RankingSummary()
    total_revenue = sum((Decimal(c.total_purchases) for c in customers), Decimal("0"))
    total_visits = sum(c.visit_count for c in customers)
    return RankingSummary(
        total_revenue=total_revenue,
        total_visits=total_visits,
        average_per_customer=total_revenue / len(customers),
        customer_count=len(customers),
    )


def rank_customers(
    customers: Iterable[Customer],
    date_range: Optional[DateRange] = None,
    limit: Optional[int] = None,
) -> Ranking:
    """
    Order customers by spend and attach ranks, tiers and summary statistics.
    
    Pure function of its input. The summary covers the whole filtered set
    even when the entries are truncated to limit.
    
    Args:
        customers: Customers of a single owner, in any order
        date_range: Keep only customers whose last visit is in this range
        limit: Keep only the first N ranks; None returns everyone
    
    Raises:
        ValidationError: If limit is not a positive integer
    """
    if limit is not None and (isinstance(limit, bool) or limit < 1):
        raise ValidationError("limit must be a positive integer", field="limit")
    
    selected = [
        c for c in customers
        if date_range is None or date_range.contains(c.last_visit)
    ]
    selected.sort(key=ranking_sort_key)
    
    shown = selected if limit is None else selected[:limit]
    entries = [
        RankedCustomer(rank=position, tier=tier_for_rank(position), customer=customer)
        for position, customer in enumerate(shown, start=1)
    ]
    return Ranking(entries=entries, summary=summarize(selected))


class RankingEngine:
    """Read path for leaderboards and recent activity of one owner."""
    
    def __init__(self, db_session: Session, store: Optional[CustomerStore] = None):
        self.store = store or CustomerStore(db_session)
        self.metrics = get_metrics_collector()
    
    def rank(
        self,
        owner_id: str,
        date_range: Optional[DateRange] = None,
        limit: Optional[int] = None,
    ) -> Ranking:
        """
        Rank all customers of owner_id from current storage state.
        
        Args:
            owner_id: Owning business
            date_range: Optional last-visit filter
            limit: Top-N truncation; None for the full view
        
        Returns:
            Ranking with entries and summary statistics
        """
        ranking = rank_customers(self.store.list_by_owner(owner_id), date_range, limit)
        self.metrics.increment_rankings(filtered=date_range is not None)
        logger.debug(
            f"Ranked {ranking.summary.customer_count} customers for owner {owner_id}"
        )
        return ranking
    
    def top(self, owner_id: str, date_range: Optional[DateRange] = None) -> Ranking:
        """Dashboard view truncated to the configured top-N."""
        return self.rank(owner_id, date_range, limit=settings.ranking_top_n)
    
    def recent_activity(self, owner_id: str, limit: Optional[int] = None) -> list[Customer]:
        """
        Customers with the most recent purchases first.
        
        Args:
            owner_id: Owning business
            limit: Maximum customers to return (default from settings)
        """
        limit = settings.recent_activity_limit if limit is None else limit
        if isinstance(limit, bool) or limit < 1:
            raise ValidationError("limit must be a positive integer", field="limit")
        
        customers = self.store.list_by_owner(owner_id)
        # Two stable sorts: id ascending inside equal timestamps
        customers.sort(key=lambda c: str(c.id))
        customers.sort(key=lambda c: c.last_visit, reverse=True)
        return customers[:limit]
