"""
Integration tests for the customer ledger API.
"""
import logging
from datetime import date, timedelta

import pytest

from loyalty_ledger.lib.clock import utcnow
from loyalty_ledger.lib.logging import ContextFilter


OWNER = "shop-1"
PHONE = "+15551234567"


def purchase(client, phone, amount, first_name=None, last_name=None, owner=OWNER):
    body = {"phone_number": phone, "amount": amount}
    if first_name is not None:
        body["first_name"] = first_name
    if last_name is not None:
        body["last_name"] = last_name
    return client.post(f"/owners/{owner}/purchases", json=body)


@pytest.mark.integration
class TestPurchases:
    
    def test_new_customer_is_created(self, client):
        response = purchase(client, PHONE, "40.00", "Ana", "Silva")
        
        assert response.status_code == 201
        data = response.json()
        assert data["first_name"] == "Ana"
        assert data["last_name"] == "Silva"
        assert data["phone_number"] == PHONE
        assert data["total_purchases"] == "40.00"
        assert data["visit_count"] == 1
        assert "X-Correlation-ID" in response.headers
    
    def test_returning_customer_is_updated(self, client):
        first = purchase(client, PHONE, "40.00", "Ana", "Silva").json()
        
        response = purchase(client, PHONE, "10.50")
        
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == first["id"]
        assert data["total_purchases"] == "50.50"
        assert data["visit_count"] == 2
    
    def test_new_customer_without_names_is_rejected(self, client):
        response = purchase(client, PHONE, "40.00", first_name="Ana")
        
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "incomplete new-customer data"
        assert body["details"] == {"field": "new_customer_names"}
    
    def test_negative_amount_is_rejected(self, client):
        response = purchase(client, PHONE, "-3", "Ana", "Silva")
        
        assert response.status_code == 422
        assert response.json()["details"] == {"field": "amount"}
    
    def test_non_numeric_amount_is_rejected(self, client):
        response = purchase(client, PHONE, "a lot", "Ana", "Silva")
        
        assert response.status_code == 422
        assert response.json()["error"] == "Validation error"
    
    def test_trailing_zeros_beyond_four_places_are_accepted(self, client):
        response = purchase(client, PHONE, "10.500000", "Ana", "Silva")
        
        assert response.status_code == 201
        assert response.json()["total_purchases"] == "10.50"
    
    def test_total_overflow_is_rejected(self, client):
        purchase(client, PHONE, "9999999999", "Ana", "Silva")
        
        response = purchase(client, PHONE, "9999999999")
        
        assert response.status_code == 422
        assert response.json()["error"] == "customer total would exceed storage limit"
        assert response.json()["details"] == {"field": "amount"}
    
    def test_empty_phone_is_rejected(self, client):
        response = purchase(client, "", "1.00", "Ana", "Silva")
        
        assert response.status_code == 422
        assert response.json()["details"] == {"field": "phone_number"}
    
    def test_owners_are_isolated(self, client):
        purchase(client, PHONE, "10", "Ana", "Silva", owner="shop-a")
        response = purchase(client, PHONE, "99", "Ana", "Silva", owner="shop-b")
        
        assert response.status_code == 201
        assert response.json()["total_purchases"] == "99.00"


@pytest.mark.integration
class TestLookup:
    
    def test_lookup_by_exact_phone(self, client):
        created = purchase(client, PHONE, "40.00", "Ana", "Silva").json()
        
        response = client.get(f"/owners/{OWNER}/customers/lookup", params={"phone": PHONE})
        
        assert response.status_code == 200
        assert response.json()["id"] == created["id"]
    
    def test_partial_phone_is_not_found(self, client):
        purchase(client, PHONE, "40.00", "Ana", "Silva")
        
        response = client.get(f"/owners/{OWNER}/customers/lookup", params={"phone": PHONE[:6]})
        
        assert response.status_code == 404
        assert response.json()["error"] == "Customer not found"
    
    def test_empty_phone_is_not_found(self, client):
        response = client.get(f"/owners/{OWNER}/customers/lookup")
        
        assert response.status_code == 404
    
    def test_lookup_is_scoped_to_owner(self, client):
        purchase(client, PHONE, "40.00", "Ana", "Silva")
        
        response = client.get("/owners/shop-2/customers/lookup", params={"phone": PHONE})
        
        assert response.status_code == 404


@pytest.mark.integration
class TestRankings:
    
    @pytest.fixture
    def customers(self, client):
        purchase(client, "+1001", "100", "Ana", "Silva")
        purchase(client, "+1001", "0")
        purchase(client, "+1001", "0")
        purchase(client, "+1002", "100", "Bruno", "Costa")
        for _ in range(4):
            purchase(client, "+1002", "0")
        purchase(client, "+1003", "20.333", "Carla", "Mendes")
    
    def test_ranking_order_tiers_and_summary(self, client, customers):
        response = client.get(f"/owners/{OWNER}/rankings")
        
        assert response.status_code == 200
        data = response.json()
        assert [c["phone_number"] for c in data["customers"]] == ["+1002", "+1001", "+1003"]
        assert [c["rank"] for c in data["customers"]] == [1, 2, 3]
        assert [c["tier"] for c in data["customers"]] == ["top_customer", "top_3", "top_3"]
        assert data["customers"][2]["total_purchases"] == "20.33"
        assert data["summary"] == {
            "total_revenue": "220.33",
            "total_visits": 9,
            "average_per_customer": "73.44",
            "customer_count": 3,
        }
        assert data["truncated"] is False
    
    def test_limit_truncates(self, client, customers):
        data = client.get(f"/owners/{OWNER}/rankings", params={"limit": 1}).json()
        
        assert len(data["customers"]) == 1
        assert data["truncated"] is True
        assert data["summary"]["customer_count"] == 3
    
    def test_default_view_is_top_ten(self, client):
        for n in range(12):
            purchase(client, f"+2{n:02d}", str(n + 1), "C", str(n))
        
        default = client.get(f"/owners/{OWNER}/rankings").json()
        full = client.get(f"/owners/{OWNER}/rankings", params={"full": True}).json()
        
        assert len(default["customers"]) == 10
        assert default["truncated"] is True
        assert len(full["customers"]) == 12
        assert full["customers"][-1]["tier"] is None
    
    def test_date_filter_including_today(self, client, customers):
        today = utcnow().date()
        
        data = client.get(
            f"/owners/{OWNER}/rankings",
            params={"start_date": today.isoformat(), "end_date": today.isoformat()},
        ).json()
        
        assert data["summary"]["customer_count"] == 3
    
    def test_date_filter_excluding_everyone(self, client, customers):
        start = date(2000, 1, 1)
        
        response = client.get(
            f"/owners/{OWNER}/rankings",
            params={"start_date": start.isoformat(), "end_date": (start + timedelta(days=30)).isoformat()},
        )
        
        assert response.status_code == 200
        data = response.json()
        assert data["customers"] == []
        assert data["summary"] == {
            "total_revenue": "0.00",
            "total_visits": 0,
            "average_per_customer": "0.00",
            "customer_count": 0,
        }
    
    def test_date_filter_ending_on_max_date(self, client, customers):
        response = client.get(
            f"/owners/{OWNER}/rankings",
            params={"start_date": "2024-01-01", "end_date": date.max.isoformat()},
        )
        
        assert response.status_code == 200
        assert response.json()["summary"]["customer_count"] == 3
    
    def test_half_open_date_filter_is_rejected(self, client):
        response = client.get(f"/owners/{OWNER}/rankings", params={"start_date": "2024-03-01"})
        
        assert response.status_code == 422
        assert response.json()["details"] == {"field": "date_range"}
    
    def test_reversed_date_filter_is_rejected(self, client):
        response = client.get(
            f"/owners/{OWNER}/rankings",
            params={"start_date": "2024-03-02", "end_date": "2024-03-01"},
        )
        
        assert response.status_code == 422
    
    def test_unknown_owner_has_empty_ranking(self, client):
        data = client.get("/owners/nobody/rankings").json()
        
        assert data["customers"] == []
        assert data["summary"]["customer_count"] == 0


@pytest.mark.integration
def test_recent_activity(client):
    for n in range(6):
        purchase(client, f"+40{n}", "1", "C", str(n))
    purchase(client, "+400", "1")
    
    data = client.get(f"/owners/{OWNER}/activity").json()
    
    assert len(data) == 5
    assert data[0]["phone_number"] == "+400"
    
    limited = client.get(f"/owners/{OWNER}/activity", params={"limit": 2}).json()
    assert len(limited) == 2


@pytest.mark.integration
def test_purchase_logs_carry_owner_and_correlation_id(client):
    class ListHandler(logging.Handler):
        def __init__(self):
            super().__init__()
            self.records = []
        
        def emit(self, record):
            self.records.append(record)
    
    handler = ListHandler()
    handler.addFilter(ContextFilter())
    recorder_logger = logging.getLogger("loyalty_ledger.services.purchase_recorder")
    recorder_logger.addHandler(handler)
    try:
        client.post(
            f"/owners/{OWNER}/purchases",
            json={"phone_number": PHONE, "amount": "5", "first_name": "Ana", "last_name": "Silva"},
            headers={"X-Correlation-ID": "req-owner-log"},
        )
    finally:
        recorder_logger.removeHandler(handler)
    
    recorded = [r for r in handler.records if r.getMessage() == "Purchase recorded"]
    assert len(recorded) == 1
    assert recorded[0].context["owner_id"] == OWNER
    assert recorded[0].context["correlation_id"] == "req-owner-log"
