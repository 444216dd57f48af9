# tests/test_api.py
from datetime import timedelta

from tests.helpers import auth_headers


def windows_url(supplier, **params):
    query = "&".join(f"{k}={v}" for k, v in params.items())
    return f"/api/v1/suppliers/{supplier.id}/available-windows" + (f"?{query}" if query else "")


def order_payload(supplier, slot_id=None, **overrides):
    payload = {
        "supplierId": str(supplier.id),
        "items": [{"productId": "rebar-12mm", "name": "Rebar 12mm", "quantity": 40, "unit": "pcs"}],
        "pickupOrDelivery": "delivery",
        "windowSlotId": slot_id,
        "negotiablePreferenceNote": None,
        "tzOffsetMinutes": 0,
    }
    payload.update(overrides)
    return payload


def assert_error(response, status_code, code, category=None):
    assert response.status_code == status_code, response.text
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == code
    if category is not None:
        assert body["error"]["category"] == category
    return body["error"]


# ==========================
# Monitoring
# ==========================

def test_health(client):
    response = client.get("/health/")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_correlation_id_is_echoed(client):
    response = client.get("/health/", headers={"X-Correlation-ID": "trace-123"})

    assert response.headers["X-Correlation-ID"] == "trace-123"


# ==========================
# Available windows
# ==========================

def test_available_windows(client, supplier):
    response = client.get(windows_url(supplier, tz_offset_minutes=0))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["sameDayCutoff"] == "14:00"
    assert data["isSameDayAvailable"] is True
    assert data["days"][0]["label"] == "Today"
    assert data["days"][0]["slots"][0]["id"] == "20240101T0900Z-60"


def test_available_windows_after_cutoff(client, clock, supplier):
    clock.now = clock.now.replace(hour=14)

    data = client.get(windows_url(supplier)).json()["data"]

    assert data["isSameDayAvailable"] is False
    assert data["days"][0]["date"] == "2024-01-02"


def test_offset_out_of_range(client, supplier):
    error = assert_error(client.get(windows_url(supplier, tz_offset_minutes=900)), 422, "VALIDATION_FAILED", "validation")

    assert error["retry"] == "fix_request"


def test_unknown_supplier(client):
    response = client.get("/api/v1/suppliers/00000000-0000-0000-0000-000000000000/available-windows")

    assert_error(response, 404, "SUPPLIER_NOT_FOUND", "not_found")


# ==========================
# Ordering
# ==========================

def test_orders_require_a_token(client, supplier):
    response = client.post("/api/v1/orders", json=order_payload(supplier))

    assert_error(response, 401, "UNAUTHENTICATED")


def test_create_order_with_slot(client, supplier, buyer_headers):
    response = client.post("/api/v1/orders", json=order_payload(supplier, "20240101T1000Z-60"), headers=buyer_headers)

    assert response.status_code == 201, response.text
    data = response.json()["data"]
    assert data["status"] == "window_confirmed"
    assert data["window"] == {
        "mode": "fixed",
        "start": "2024-01-01T10:00:00+00:00",
        "end": "2024-01-01T11:00:00+00:00",
        "negotiableNote": None,
    }
    assert data["items"][0]["productId"] == "rebar-12mm"
    assert data["confirmationDeadline"] is None


def test_slot_taken_is_reported_as_temporal(client, make_supplier, buyer_headers):
    supplier = make_supplier(slot_capacity=1)
    client.post("/api/v1/orders", json=order_payload(supplier, "20240101T1000Z-60"), headers=buyer_headers)

    response = client.post("/api/v1/orders", json=order_payload(supplier, "20240101T1000Z-60"), headers=buyer_headers)

    error = assert_error(response, 409, "SLOT_NO_LONGER_AVAILABLE", "temporal")
    assert error["retry"] == "refetch"

    listing = client.get(windows_url(supplier)).json()["data"]
    slot = next(s for s in listing["days"][0]["slots"] if s["id"] == "20240101T1000Z-60")
    assert slot["available"] is False


def test_malformed_slot(client, supplier, buyer_headers):
    response = client.post("/api/v1/orders", json=order_payload(supplier, "soon"), headers=buyer_headers)

    assert_error(response, 422, "INVALID_SLOT", "validation")


def test_order_needs_items(client, supplier, buyer_headers):
    response = client.post("/api/v1/orders", json=order_payload(supplier, items=[]), headers=buyer_headers)

    assert_error(response, 422, "VALIDATION_FAILED")


def test_other_buyers_cannot_see_the_order(client, supplier, buyer_headers):
    order = client.post("/api/v1/orders", json=order_payload(supplier), headers=buyer_headers).json()["data"]

    stranger = auth_headers(sub="buyer-2", phone="+995599000000")
    response = client.get(f"/api/v1/orders/{order['id']}", headers=stranger)

    assert_error(response, 404, "ORDER_NOT_FOUND")


# ==========================
# Fulfillment and confirmation
# ==========================

def place_and_deliver(client, clock, supplier, buyer_headers, supplier_headers):
    order = client.post(
        "/api/v1/orders", json=order_payload(supplier, "20240101T1000Z-60"), headers=buyer_headers
    ).json()["data"]

    clock.now = clock.now.replace(hour=9, minute=30)
    assert client.post(f"/api/v1/supplier/orders/{order['id']}/dispatch", headers=supplier_headers).status_code == 200

    clock.now = clock.now.replace(hour=10, minute=0)
    response = client.post(
        f"/api/v1/supplier/orders/{order['id']}/mark-delivered",
        json={"notes": "Left at site gate"},
        headers=supplier_headers,
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]


def test_delivery_then_confirmation(client, clock, supplier, buyer_headers, supplier_headers):
    order = place_and_deliver(client, clock, supplier, buyer_headers, supplier_headers)
    assert order["status"] == "delivered"
    assert order["confirmationDeadline"] == "2024-01-02T10:00:00+00:00"
    assert order["secondsRemaining"] == 24 * 3600

    clock.advance(hours=3)
    current = client.get(f"/api/v1/orders/{order['id']}", headers=buyer_headers).json()["data"]
    assert current["secondsRemaining"] == 21 * 3600

    response = client.post(f"/api/v1/orders/{order['id']}/confirm", headers=buyer_headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "completed"
    assert response.json()["data"]["completedBy"] == "buyer"

    again = client.post(f"/api/v1/orders/{order['id']}/confirm", headers=buyer_headers)
    assert again.status_code == 200
    assert again.json()["data"]["confirmedAt"] == response.json()["data"]["confirmedAt"]

    history = client.get(f"/api/v1/orders/{order['id']}/history", headers=buyer_headers).json()["data"]
    assert [h["newStatus"] for h in history] == ["created", "window_confirmed", "in_transit", "delivered", "completed"]


def dispatched_order(client, clock, supplier, buyer_headers, supplier_headers):
    order = client.post(
        "/api/v1/orders", json=order_payload(supplier, "20240101T1000Z-60"), headers=buyer_headers
    ).json()["data"]
    clock.now = clock.now.replace(hour=9, minute=30)
    client.post(f"/api/v1/supplier/orders/{order['id']}/dispatch", headers=supplier_headers)
    clock.now = clock.now.replace(hour=10, minute=0)
    return order


def test_delivery_proof_is_kept_with_the_order(client, clock, supplier, buyer_headers, supplier_headers):
    order = dispatched_order(client, clock, supplier, buyer_headers, supplier_headers)

    response = client.post(
        f"/api/v1/supplier/orders/{order['id']}/mark-delivered",
        json={
            "notes": "32 of 40 bars, rest tomorrow",
            "photos": ["uploads/gate.jpg", "uploads/pallet.jpg"],
            "quantitiesDelivered": [{"productId": "rebar-12mm", "quantity": 32, "unit": "pcs"}],
            "isPartial": True,
            "driverName": "Giorgi",
            "vehicleInfo": "TB-123-AA",
            "deliveredAt": "2024-01-01T09:45:00+00:00",
        },
        headers=supplier_headers,
    )

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["deliveredAt"] == "2024-01-01T09:45:00+00:00"
    assert data["confirmationDeadline"] == "2024-01-02T09:45:00+00:00"
    event = data["deliveryEvent"]
    assert event["recordedBy"] == "supplier"
    assert event["photos"] == ["uploads/gate.jpg", "uploads/pallet.jpg"]
    assert event["quantitiesDelivered"] == [{"productId": "rebar-12mm", "quantity": 32, "unit": "pcs"}]
    assert event["isPartial"] is True
    assert event["driverName"] == "Giorgi"

    seen_by_buyer = client.get(f"/api/v1/orders/{order['id']}", headers=buyer_headers).json()["data"]
    assert seen_by_buyer["deliveryEvent"]["notes"] == "32 of 40 bars, rest tomorrow"


def test_delivery_time_in_the_future_is_rejected(client, clock, supplier, buyer_headers, supplier_headers):
    order = dispatched_order(client, clock, supplier, buyer_headers, supplier_headers)

    response = client.post(
        f"/api/v1/supplier/orders/{order['id']}/mark-delivered",
        json={"deliveredAt": "2024-01-01T12:00:00+00:00"},
        headers=supplier_headers,
    )

    error = assert_error(response, 422, "VALIDATION_FAILED", "validation")
    assert error["details"]["field"] == "deliveredAt"
    current = client.get(f"/api/v1/orders/{order['id']}", headers=buyer_headers).json()["data"]
    assert current["status"] == "in_transit"
    assert current["deliveryEvent"] is None


def test_wrong_phone_cannot_confirm(client, clock, supplier, buyer_headers, supplier_headers):
    order = place_and_deliver(client, clock, supplier, buyer_headers, supplier_headers)

    same_account_new_phone = auth_headers(phone="+995599000000")
    response = client.post(f"/api/v1/orders/{order['id']}/confirm", headers=same_account_new_phone)

    assert_error(response, 403, "WRONG_PHONE_CONFIRMATION", "authorization")


def test_late_confirmation(client, clock, supplier, buyer_headers, supplier_headers):
    order = place_and_deliver(client, clock, supplier, buyer_headers, supplier_headers)
    clock.advance(hours=24, seconds=1)

    response = client.post(f"/api/v1/orders/{order['id']}/confirm", headers=buyer_headers)

    error = assert_error(response, 410, "CONFIRMATION_WINDOW_EXPIRED", "temporal")
    assert error["details"]["informational"] is True

    current = client.get(f"/api/v1/orders/{order['id']}", headers=buyer_headers).json()["data"]
    assert current["status"] == "completed"
    assert current["completedBy"] == "system"
    assert current["confirmedAt"] is None


def test_dispute(client, clock, supplier, buyer_headers, supplier_headers):
    order = place_and_deliver(client, clock, supplier, buyer_headers, supplier_headers)
    clock.advance(hours=23)

    response = client.post(
        f"/api/v1/orders/{order['id']}/dispute",
        json={"issueCategory": "quality_issue", "description": "Cement bags were wet", "photos": ["u/1.jpg"]},
        headers=buyer_headers,
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["data"]["status"] == "disputed"
    assert body["data"]["confirmedAt"] is None
    assert body["dispute"]["issueCategory"] == "quality_issue"

    confirm = client.post(f"/api/v1/orders/{order['id']}/confirm", headers=buyer_headers)
    assert_error(confirm, 409, "INVALID_ORDER_TRANSITION", "conflict")


def test_dispute_with_too_many_photos(client, clock, supplier, buyer_headers, supplier_headers):
    order = place_and_deliver(client, clock, supplier, buyer_headers, supplier_headers)

    response = client.post(
        f"/api/v1/orders/{order['id']}/dispute",
        json={"issueCategory": "damage", "description": "Cracked tiles", "photos": [f"u/{i}.jpg" for i in range(6)]},
        headers=buyer_headers,
    )

    assert_error(response, 422, "VALIDATION_FAILED", "validation")


def test_dispute_before_delivery(client, supplier, buyer_headers):
    order = client.post("/api/v1/orders", json=order_payload(supplier), headers=buyer_headers).json()["data"]

    response = client.post(
        f"/api/v1/orders/{order['id']}/dispute",
        json={"issueCategory": "other", "description": "Nothing arrived"},
        headers=buyer_headers,
    )

    assert_error(response, 409, "ORDER_NOT_DISPUTABLE", "conflict")


# ==========================
# Supplier access and proposals
# ==========================

def test_supplier_routes_need_supplier_claim(client, supplier, buyer_headers):
    order = client.post("/api/v1/orders", json=order_payload(supplier), headers=buyer_headers).json()["data"]

    response = client.post(f"/api/v1/supplier/orders/{order['id']}/dispatch", headers=buyer_headers)

    assert_error(response, 403, "FORBIDDEN")


def test_other_supplier_cannot_dispatch(client, make_supplier, supplier, buyer_headers):
    order = client.post("/api/v1/orders", json=order_payload(supplier), headers=buyer_headers).json()["data"]
    other = make_supplier(name="Batumi Blocks")

    response = client.post(
        f"/api/v1/supplier/orders/{order['id']}/dispatch",
        headers=auth_headers(sub="other", supplier_id=other.id),
    )

    assert_error(response, 403, "NOT_ORDER_SUPPLIER", "authorization")


def test_negotiable_order_agreed_through_proposals(client, clock, supplier, buyer_headers, supplier_headers):
    order = client.post(
        "/api/v1/orders",
        json=order_payload(supplier, negotiablePreferenceNote="Any weekday after 3pm"),
        headers=buyer_headers,
    ).json()["data"]
    assert order["status"] == "created"
    assert order["window"]["mode"] == "negotiable"
    assert order["window"]["negotiableNote"] == "Any weekday after 3pm"

    proposal = {"windowStart": "2024-01-02T15:00:00+00:00", "windowEnd": "2024-01-02T17:00:00+00:00"}
    response = client.post(
        f"/api/v1/supplier/orders/{order['id']}/propose-window", json=proposal, headers=supplier_headers
    )
    assert response.status_code == 200, response.text
    assert response.json()["data"]["proposal"]["proposedBy"] == "supplier"

    response = client.post(f"/api/v1/orders/{order['id']}/accept-window", headers=buyer_headers)
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["status"] == "window_confirmed"
    assert data["window"]["start"] == "2024-01-02T15:00:00+00:00"


def test_counter_proposal_accepted_by_supplier(client, supplier, buyer_headers, supplier_headers):
    order = client.post("/api/v1/orders", json=order_payload(supplier), headers=buyer_headers).json()["data"]
    client.post(
        f"/api/v1/supplier/orders/{order['id']}/propose-window",
        json={"windowStart": "2024-01-02T08:00:00Z", "windowEnd": "2024-01-02T10:00:00Z"},
        headers=supplier_headers,
    )

    assert client.post(f"/api/v1/orders/{order['id']}/reject-window", headers=buyer_headers).status_code == 200
    response = client.post(
        f"/api/v1/orders/{order['id']}/counter-propose-window",
        json={"windowStart": "2024-01-03T08:00:00Z", "windowEnd": "2024-01-03T10:00:00Z"},
        headers=buyer_headers,
    )
    assert response.json()["data"]["proposal"]["proposedBy"] == "buyer"

    response = client.post(f"/api/v1/supplier/orders/{order['id']}/accept-window", headers=supplier_headers)

    assert response.json()["data"]["window"]["start"] == "2024-01-03T08:00:00+00:00"


def test_expired_proposal(client, clock, supplier, buyer_headers, supplier_headers):
    order = client.post("/api/v1/orders", json=order_payload(supplier), headers=buyer_headers).json()["data"]
    client.post(
        f"/api/v1/supplier/orders/{order['id']}/propose-window",
        json={"windowStart": "2024-01-01T12:00:00Z", "windowEnd": "2024-01-01T13:00:00Z"},
        headers=supplier_headers,
    )
    clock.advance(hours=5)

    response = client.post(f"/api/v1/orders/{order['id']}/accept-window", headers=buyer_headers)

    assert_error(response, 410, "OFFER_EXPIRED", "temporal")


def test_naive_proposal_timestamps_are_rejected(client, supplier, buyer_headers, supplier_headers):
    order = client.post("/api/v1/orders", json=order_payload(supplier), headers=buyer_headers).json()["data"]

    response = client.post(
        f"/api/v1/supplier/orders/{order['id']}/propose-window",
        json={"windowStart": "2024-01-02T08:00:00", "windowEnd": "2024-01-02T10:00:00"},
        headers=supplier_headers,
    )

    assert_error(response, 422, "VALIDATION_FAILED")


def test_confirm_pickup(client, supplier, buyer_headers, supplier_headers):
    order = client.post(
        "/api/v1/orders", json=order_payload(supplier, pickupOrDelivery="pickup"), headers=buyer_headers
    ).json()["data"]
    client.post(f"/api/v1/supplier/orders/{order['id']}/dispatch", headers=supplier_headers)

    response = client.post(f"/api/v1/orders/{order['id']}/confirm-pickup", headers=buyer_headers)

    assert response.status_code == 200, response.text
    assert response.json()["data"]["status"] == "delivered"
    assert response.json()["data"]["deliveredAt"] == "2024-01-01T08:00:00+00:00"


def test_time_is_read_per_request(client, clock, supplier, buyer_headers, supplier_headers):
    order = place_and_deliver(client, clock, supplier, buyer_headers, supplier_headers)
    clock.now = clock.now + timedelta(hours=24)

    current = client.get(f"/api/v1/orders/{order['id']}", headers=buyer_headers).json()["data"]

    # The GET applies the overdue auto-completion
    assert current["status"] == "completed"
    assert current["secondsRemaining"] is None
