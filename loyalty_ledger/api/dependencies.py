"""
API dependencies for FastAPI dependency injection.

Each request gets its own database session and its own service instances;
nothing ledger-related is shared between requests except the database.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from loyalty_ledger.lib.db import get_db as get_db_session
from loyalty_ledger.lib.logging import bind_log_context
from loyalty_ledger.services.customer_matcher import CustomerMatcher
from loyalty_ledger.services.purchase_recorder import PurchaseRecorder
from loyalty_ledger.services.ranking_service import RankingEngine


# Re-export get_db for convenience
get_db = get_db_session


async def bind_owner_log_context(owner_id: str) -> None:
    """
    Tag every log record of an owner-scoped request with its owner.
    
    Async so it runs in the request task; the sync endpoints then inherit
    the bound context in their worker thread.
    """
    bind_log_context(owner_id=owner_id)


def get_customer_matcher(db: Session = Depends(get_db)) -> CustomerMatcher:
    return CustomerMatcher(db)


def get_purchase_recorder(db: Session = Depends(get_db)) -> PurchaseRecorder:
    return PurchaseRecorder(db)


def get_ranking_engine(db: Session = Depends(get_db)) -> RankingEngine:
    return RankingEngine(db)
