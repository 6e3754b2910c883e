from marketplace.extensions import db
from marketplace.services.order_status import change_order_status


class TestVerifyPayment:
    def test_viewers_only(self, client, seed, make_order, headers_for):
        order = make_order()
        url = f"/api/paypal/verify-payment/{order.id}"
        assert client.get(url).status_code == 401
        assert client.get(url, headers=headers_for(seed.other)).status_code == 403
        assert client.get("/api/paypal/verify-payment/999", headers=headers_for(seed.buyer)).status_code == 404

    def test_without_capture(self, client, seed, make_order, headers_for):
        order = make_order()
        body = client.get(f"/api/paypal/verify-payment/{order.id}", headers=headers_for(seed.buyer)).get_json()
        assert body["payment_verified"] is False
        assert body["message"] == "No PayPal capture ID available"
        assert body["paypal_order_id"] == "PAYPAL-ORDER-1"

    def test_captured_and_paid(self, client, seed, make_order, headers_for):
        order = make_order(status="shipped", capture_id="CAPTURE-1")
        body = client.get(f"/api/paypal/verify-payment/{order.id}", headers=headers_for(seed.owner)).get_json()
        assert body["payment_verified"] is True
        assert body["paypal_capture_id"] == "CAPTURE-1"
        assert body["verification_timestamp"]


class TestVerifyOrder:
    def test_amount_and_status_match(self, client, paypal, seed, make_order, headers_for):
        order = make_order(status="paid", capture_id="CAPTURE-1")
        res = client.get(f"/api/paypal/verify-order/{order.id}", headers=headers_for(seed.buyer))
        assert res.status_code == 200
        body = res.get_json()
        assert body["amount_match"] is True
        assert body["paypal_amount"] == "39.98"
        assert body["database_amount"] == "39.98"
        assert body["paypal_capture_status"] == "COMPLETED"
        assert body["is_valid"] is True

        call = paypal.last("/PAYPAL-ORDER-1")
        assert (call["method"], call["path"]) == ("GET", "/v2/checkout/orders/PAYPAL-ORDER-1")

    def test_amount_mismatch_is_invalid(self, client, paypal, seed, make_order, headers_for):
        paypal.order = (200, {"id": "PAYPAL-ORDER-1", "status": "COMPLETED",
                              "purchase_units": [{"amount": {"value": "10.00"}}]})
        order = make_order(status="paid")
        body = client.get(f"/api/paypal/verify-order/{order.id}", headers=headers_for(seed.buyer)).get_json()
        assert body["amount_match"] is False
        assert body["is_valid"] is False

    def test_created_order_is_not_valid(self, client, paypal, seed, make_order, headers_for):
        paypal.order = (200, {"id": "PAYPAL-ORDER-1", "status": "CREATED",
                              "purchase_units": [{"amount": {"value": "39.98"}}]})
        order = make_order()
        body = client.get(f"/api/paypal/verify-order/{order.id}", headers=headers_for(seed.buyer)).get_json()
        assert body["amount_match"] is True
        assert body["is_valid"] is False

    def test_missing_paypal_order_id(self, client, paypal, seed, make_order, headers_for):
        order = make_order(payment_id=None)
        res = client.get(f"/api/paypal/verify-order/{order.id}", headers=headers_for(seed.buyer))
        assert res.status_code == 400
        assert paypal.calls == []

    def test_upstream_failure(self, client, paypal, seed, make_order, headers_for):
        paypal.order = (404, {"name": "RESOURCE_NOT_FOUND", "message": "Order not found"})
        order = make_order()
        res = client.get(f"/api/paypal/verify-order/{order.id}", headers=headers_for(seed.buyer))
        assert res.status_code == 404
        body = res.get_json()
        assert body["error"] == "Failed to verify PayPal order"
        assert body["details"]["name"] == "RESOURCE_NOT_FOUND"


class TestVerifyCapture:
    def test_admin_only(self, client, paypal, seed, headers_for):
        res = client.get("/api/paypal/verify-capture/CAPTURE-1", headers=headers_for(seed.buyer))
        assert res.status_code == 403
        assert paypal.calls == []

    def test_links_local_order(self, client, paypal, seed, make_order, headers_for):
        order = make_order(status="paid", capture_id="CAPTURE-1")
        body = client.get("/api/paypal/verify-capture/CAPTURE-1", headers=headers_for(seed.admin)).get_json()
        assert body["is_valid"] is True
        assert body["order_id"] == order.id
        assert body["order_status"] == "paid"
        assert body["amount"] == {"currency_code": "USD", "value": "39.98"}
        assert paypal.last("/CAPTURE-1")["path"] == "/v2/payments/captures/CAPTURE-1"

    def test_unknown_capture(self, client, paypal, seed, headers_for):
        paypal.capture_details = (200, {"id": "CAPTURE-X", "status": "DECLINED"})
        body = client.get("/api/paypal/verify-capture/CAPTURE-X", headers=headers_for(seed.admin)).get_json()
        assert body["is_valid"] is False
        assert body["order_id"] is None


class TestPaymentStatus:
    def test_summary(self, client, seed, make_order, headers_for):
        order = make_order()
        change_order_status(order, "paid")
        change_order_status(order, "confirmed", role="vendor")
        db.session.commit()

        body = client.get(f"/api/paypal/payment-status/{order.id}", headers=headers_for(seed.buyer)).get_json()
        assert body["payment_received"] is True
        assert body["total_amount_cents"] == 3998
        assert [h["new_status"] for h in body["status_history"]] == ["confirmed", "paid"]

    def test_pending_has_not_been_received(self, client, seed, make_order, headers_for):
        order = make_order()
        body = client.get(f"/api/paypal/payment-status/{order.id}", headers=headers_for(seed.admin)).get_json()
        assert body["payment_received"] is False
        assert body["status_history"] == []


class TestBatchVerify:
    def test_admin_only(self, client, seed, headers_for):
        res = client.post("/api/paypal/batch-verify", json={"orderIds": [1]}, headers=headers_for(seed.owner))
        assert res.status_code == 403

    def test_results(self, client, seed, make_order, headers_for):
        paid = make_order(status="paid", capture_id="CAPTURE-1")
        pending = make_order(payment_id="PAYPAL-ORDER-2")
        res = client.post(
            "/api/paypal/batch-verify",
            json={"orderIds": [paid.id, pending.id, 999, "abc"]},
            headers=headers_for(seed.admin),
        )
        body = res.get_json()
        assert body["total_orders"] == 4
        assert body["verified_orders"] == 2
        assert [r.get("is_valid") for r in body["results"]] == [True, False, None, None]
        assert body["results"][3] == {"order_id": "abc", "error": "Order not found"}

    def test_limits(self, client, seed, headers_for):
        admin = headers_for(seed.admin)
        assert client.post("/api/paypal/batch-verify", json={"orderIds": []}, headers=admin).status_code == 400
        too_many = {"orderIds": list(range(1, 52))}
        assert client.post("/api/paypal/batch-verify", json=too_many, headers=admin).status_code == 400


class TestRefundLookup:
    def test_admin_fetches_refund(self, client, paypal, seed, headers_for):
        res = client.get("/api/paypal/refund/REFUND-1", headers=headers_for(seed.admin))
        assert res.status_code == 200
        assert res.get_json()["status"] == "COMPLETED"
        assert paypal.last("/REFUND-1")["path"] == "/v2/payments/refunds/REFUND-1"

    def test_upstream_status_passes_through(self, client, paypal, seed, headers_for):
        paypal.refund_details = (404, {"name": "RESOURCE_NOT_FOUND", "message": "Refund not found"})
        res = client.get("/api/paypal/refund/NOPE", headers=headers_for(seed.admin))
        assert res.status_code == 404
        assert res.get_json() == {"error": "Refund not found"}

    def test_admin_only(self, client, paypal, seed, headers_for):
        assert client.get("/api/paypal/refund/REFUND-1", headers=headers_for(seed.buyer)).status_code == 403
