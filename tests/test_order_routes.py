from marketplace.extensions import db
from marketplace.models import Order, Refund
from marketplace.services.order_status import change_order_status

ADDRESS = {"line1": "1 Main St", "city": "Springfield", "country": "US"}


class TestCreateOrder:
    def _post(self, client, headers, **overrides):
        body = {"paypalOrderId": "PAYPAL-ORDER-9", "shippingAddress": ADDRESS}
        body.update(overrides)
        return client.post("/api/orders", json=body, headers=headers)

    def test_creates_pending_order_at_current_price(self, client, seed, headers_for):
        res = self._post(client, headers_for(seed.buyer), items=[{"variantId": seed.red.id, "quantity": 2}])
        assert res.status_code == 201
        order = res.get_json()["order"]
        assert order["status"] == "pending"
        assert order["total_amount_cents"] == 3998
        assert order["payment_id"] == "PAYPAL-ORDER-9"
        assert order["vendor_id"] == seed.vendor.id
        assert order["items"][0]["price_at_purchase_cents"] == 1999
        assert order["items"][0]["subtotal_cents"] == 3998
        # stock moves on payment, not on order creation
        assert seed.red.inventory_quantity == 10

    def test_price_at_purchase_is_honoured(self, client, seed, headers_for):
        res = self._post(
            client,
            headers_for(seed.buyer),
            items=[{"variantId": seed.blue.id, "quantity": 1, "priceAtPurchase": 2000}],
        )
        assert res.get_json()["order"]["total_amount_cents"] == 2000

    def test_bad_price_at_purchase_is_refused(self, client, seed, headers_for):
        for price in (-5000, 19.99, "1999", True):
            res = self._post(
                client,
                headers_for(seed.buyer),
                items=[{"variantId": seed.red.id, "quantity": 1, "priceAtPurchase": price}],
            )
            assert res.status_code == 400
            assert res.get_json()["error"] == "priceAtPurchase must be a positive integer (cents)"
        assert Order.query.count() == 0

    def test_zero_price_at_purchase_uses_variant_price(self, client, seed, headers_for):
        res = self._post(
            client,
            headers_for(seed.buyer),
            items=[{"variantId": seed.red.id, "quantity": 1, "priceAtPurchase": 0}],
        )
        assert res.status_code == 201
        assert res.get_json()["order"]["total_amount_cents"] == 1999

    def test_requires_identity(self, client, seed):
        res = self._post(client, {}, items=[{"variantId": seed.red.id, "quantity": 1}])
        assert res.status_code == 401

    def test_missing_fields(self, client, seed, headers_for):
        res = client.post("/api/orders", json={"items": []}, headers=headers_for(seed.buyer))
        assert res.status_code == 400
        assert res.get_json() == {"ok": False, "error": "Missing required fields"}

    def test_quantity_must_be_positive_integer(self, client, seed, headers_for):
        for qty in (0, -1, 1.5, "2"):
            res = self._post(client, headers_for(seed.buyer), items=[{"variantId": seed.red.id, "quantity": qty}])
            assert res.status_code == 400

    def test_unknown_variant(self, client, seed, headers_for):
        res = self._post(client, headers_for(seed.buyer), items=[{"variantId": 999, "quantity": 1}])
        assert res.status_code == 404
        assert Order.query.count() == 0


class TestReadOrders:
    def test_my_orders_only_lists_own(self, client, seed, make_order, headers_for):
        make_order()
        make_order(status="paid", payment_id="PAYPAL-ORDER-2")
        make_order(user=seed.other, payment_id="PAYPAL-ORDER-3")

        body = client.get("/api/orders/my-orders", headers=headers_for(seed.buyer)).get_json()
        assert body["pagination"]["total"] == 2

        paid = client.get("/api/orders/my-orders?status=paid", headers=headers_for(seed.buyer)).get_json()
        assert [o["payment_id"] for o in paid["orders"]] == ["PAYPAL-ORDER-2"]

    def test_order_visibility(self, client, seed, make_order, headers_for):
        order = make_order()
        url = f"/api/orders/{order.id}"
        assert client.get(url, headers=headers_for(seed.buyer)).status_code == 200
        assert client.get(url, headers=headers_for(seed.owner)).status_code == 200
        assert client.get(url, headers=headers_for(seed.admin)).status_code == 200
        assert client.get(url, headers=headers_for(seed.other)).status_code == 403
        assert client.get("/api/orders/999", headers=headers_for(seed.buyer)).status_code == 404

    def test_detail_includes_history(self, client, seed, make_order, headers_for):
        order = make_order()
        change_order_status(order, "paid")
        db.session.commit()
        body = client.get(f"/api/orders/{order.id}", headers=headers_for(seed.buyer)).get_json()
        assert [h["new_status"] for h in body["order"]["history"]] == ["paid"]
        assert body["order"]["refunds"] == []


class TestUpdateStatus:
    def test_vendor_confirms_paid_order(self, client, seed, make_order, headers_for):
        order = make_order(status="paid")
        res = client.patch(f"/api/orders/{order.id}/status", json={"status": "confirmed"},
                           headers=headers_for(seed.owner))
        assert res.status_code == 200
        assert res.get_json()["order"]["status"] == "confirmed"

    def test_buyer_cannot_update(self, client, seed, make_order, headers_for):
        order = make_order(status="paid")
        res = client.patch(f"/api/orders/{order.id}/status", json={"status": "confirmed"},
                           headers=headers_for(seed.buyer))
        assert res.status_code == 403

    def test_unknown_status(self, client, seed, make_order, headers_for):
        order = make_order()
        res = client.patch(f"/api/orders/{order.id}/status", json={"status": "lost"},
                           headers=headers_for(seed.admin))
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invalid status"

    def test_illegal_transition(self, client, seed, make_order, headers_for):
        order = make_order()
        res = client.patch(f"/api/orders/{order.id}/status", json={"status": "shipped"},
                           headers=headers_for(seed.owner))
        assert res.status_code == 400
        assert res.get_json()["error"] == "Cannot transition from pending to shipped"

    def test_ship_with_tracking(self, client, seed, make_order, headers_for):
        order = make_order(status="packed")
        res = client.patch(
            f"/api/orders/{order.id}/status",
            json={"status": "shipped", "tracking_number": "1Z999", "carrier": "UPS"},
            headers=headers_for(seed.owner),
        )
        body = res.get_json()["order"]
        assert body["status"] == "shipped"
        assert body["tracking_number"] == "1Z999"
        assert body["shipping_carrier"] == "UPS"
        assert body["shipped_at"] is not None
        assert body["delivered_at"] is None

    def test_delivery_is_timestamped(self, client, seed, make_order, headers_for):
        order = make_order(status="shipped")
        res = client.patch(f"/api/orders/{order.id}/status", json={"status": "delivered"},
                           headers=headers_for(seed.owner))
        assert res.status_code == 200
        assert res.get_json()["order"]["delivered_at"] is not None


class TestCancel:
    def test_buyer_cancels_pending_order(self, client, seed, make_order, headers_for):
        order = make_order()
        res = client.post(f"/api/orders/{order.id}/cancel", headers=headers_for(seed.buyer))
        assert res.status_code == 200
        body = res.get_json()["order"]
        assert body["status"] == "cancelled"
        assert body["cancellation_reason"] == "Cancelled by customer"

    def test_cancel_confirmed_order_restores_stock(self, client, seed, make_order, headers_for):
        order = make_order(quantity=4)
        change_order_status(order, "paid")
        change_order_status(order, "confirmed", role="vendor")
        db.session.commit()
        assert seed.red.inventory_quantity == 6

        res = client.post(f"/api/orders/{order.id}/cancel", json={"reason": "Found it cheaper"},
                          headers=headers_for(seed.buyer))
        assert res.status_code == 200
        assert seed.red.inventory_quantity == 10

    def test_paid_order_cannot_be_cancelled_by_buyer(self, client, seed, make_order, headers_for):
        order = make_order(status="paid")
        res = client.post(f"/api/orders/{order.id}/cancel", headers=headers_for(seed.buyer))
        assert res.status_code == 400
        assert res.get_json()["error"] == "Cannot cancel this order"

    def test_only_the_buyer_cancels(self, client, seed, make_order, headers_for):
        order = make_order()
        res = client.post(f"/api/orders/{order.id}/cancel", headers=headers_for(seed.owner))
        assert res.status_code == 403


class TestRefund:
    def test_admin_only(self, client, paypal, seed, make_order, headers_for):
        order = make_order(status="paid", capture_id="CAPTURE-1")
        res = client.post(f"/api/orders/{order.id}/refund", json={}, headers=headers_for(seed.owner))
        assert res.status_code == 403

    def test_needs_capture_id(self, client, paypal, seed, make_order, headers_for):
        order = make_order(status="paid")
        res = client.post(f"/api/orders/{order.id}/refund", json={}, headers=headers_for(seed.admin))
        assert res.status_code == 400
        assert res.get_json()["error"] == "No PayPal capture ID found for this order"

    def test_pending_order_is_not_refundable(self, client, paypal, seed, make_order, headers_for):
        order = make_order(status="pending", capture_id="CAPTURE-1")
        res = client.post(f"/api/orders/{order.id}/refund", json={}, headers=headers_for(seed.admin))
        assert res.status_code == 400

    def test_full_refund(self, client, paypal, seed, make_order, headers_for):
        order = make_order(status="paid", capture_id="CAPTURE-1")
        res = client.post(f"/api/orders/{order.id}/refund", json={"reason": "Damaged"},
                          headers=headers_for(seed.admin))
        assert res.status_code == 200
        body = res.get_json()
        assert body["order"]["status"] == "refunded"
        assert body["refund"]["amount_cents"] == 3998
        assert body["refund"]["status"] == "completed"
        assert body["refund"]["paypal_refund_id"] == "REFUND-1"

        call = paypal.last("/refund")
        assert call["path"] == "/v2/payments/captures/CAPTURE-1/refund"
        assert call["json"] == {}

    def test_partial_refund_keeps_status(self, client, paypal, seed, make_order, headers_for):
        order = make_order(status="delivered", capture_id="CAPTURE-1")
        res = client.post(f"/api/orders/{order.id}/refund", json={"amount_cents": 500},
                          headers=headers_for(seed.admin))
        assert res.status_code == 200
        assert res.get_json()["order"]["status"] == "delivered"
        assert paypal.last("/refund")["json"] == {"amount": {"value": "5.00", "currency_code": "USD"}}

    def test_refund_cannot_exceed_remaining(self, client, paypal, seed, make_order, headers_for):
        order = make_order(status="paid", capture_id="CAPTURE-1")
        res = client.post(f"/api/orders/{order.id}/refund", json={"amount_cents": 5000},
                          headers=headers_for(seed.admin))
        assert res.status_code == 400
        assert paypal.calls == []

    def test_paypal_failure_is_recorded(self, client, paypal, seed, make_order, headers_for):
        paypal.refund = (422, {"name": "UNPROCESSABLE_ENTITY", "message": "Capture has already been fully refunded"})
        order = make_order(status="paid", capture_id="CAPTURE-1")
        res = client.post(f"/api/orders/{order.id}/refund", json={}, headers=headers_for(seed.admin))
        assert res.status_code == 422
        assert res.get_json()["error"] == "Capture has already been fully refunded"

        refund = Refund.query.filter_by(order_id=order.id).one()
        assert refund.status == "failed"
        assert db.session.get(Order, order.id).status == "paid"

    def test_pending_refund_counts_against_remaining(self, client, paypal, seed, make_order, headers_for):
        paypal.refund = (201, {"id": "REFUND-1", "status": "PENDING"})
        order = make_order(status="paid", capture_id="CAPTURE-1")
        url = f"/api/orders/{order.id}/refund"

        first = client.post(url, json={"amount_cents": 3000}, headers=headers_for(seed.admin))
        assert first.get_json()["refund"]["status"] == "pending"

        # only 998 cents are left, so 1000 overshoots
        over = client.post(url, json={"amount_cents": 1000}, headers=headers_for(seed.admin))
        assert over.status_code == 400
        assert over.get_json()["error"] == "Refund exceeds the remaining 998 cents"

        paypal.refund = (201, {"id": "REFUND-2", "status": "COMPLETED"})
        rest = client.post(url, json={}, headers=headers_for(seed.admin))
        assert rest.status_code == 200
        body = rest.get_json()
        assert body["refund"]["amount_cents"] == 998
        assert body["order"]["status"] == "refunded"
        assert paypal.last("/refund")["json"] == {}
