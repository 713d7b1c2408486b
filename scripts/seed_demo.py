"""
Demo setup script - records a handful of purchases for a demo business
so the rankings and activity views have something to show.

Usage:
    DATABASE_URL=sqlite:///./loyalty_ledger.db python scripts/seed_demo.py
"""
from decimal import Decimal

from loyalty_ledger.lib.db import get_db_context, init_db
from loyalty_ledger.services.customer_store import NewCustomerNames
from loyalty_ledger.services.purchase_recorder import PurchaseRecorder
from loyalty_ledger.services.ranking_service import RankingEngine, money_display


DEMO_OWNER = "demo-coffee-shop"

DEMO_PURCHASES = [
    ("+15551234567", Decimal("40.00"), NewCustomerNames("Ana", "Silva")),
    ("+15551234567", Decimal("10.50"), None),
    ("+15557654321", Decimal("22.75"), NewCustomerNames("Bruno", "Costa")),
    ("+15550001111", Decimal("64.20"), NewCustomerNames("Carla", "Mendes")),
    ("+15557654321", Decimal("18.00"), None),
]


def run_demo_setup() -> None:
    print("Starting demo setup...")
    init_db()
    
    with get_db_context() as db:
        recorder = PurchaseRecorder(db)
        for phone, amount, names in DEMO_PURCHASES:
            customer = recorder.record_purchase(DEMO_OWNER, phone, amount, names)
            print(f"  {customer.full_name}: {money_display(customer.total_purchases)} ({customer.visit_count} visits)")
        
        ranking = RankingEngine(db).rank(DEMO_OWNER)
        print("\nRanking:")
        for entry in ranking.entries:
            label = entry.tier.value if entry.tier else ""
            print(f"  #{entry.rank} {entry.customer.full_name} {money_display(entry.customer.total_purchases)} {label}")
        print(f"\nTotal revenue: {money_display(ranking.summary.total_revenue)}")
    
    print("Demo setup complete!")


if __name__ == "__main__":
    run_demo_setup()
