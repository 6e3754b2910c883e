class TestVendorOrders:
    def test_owner_sees_sold_lines(self, client, seed, make_order, headers_for):
        first = make_order(quantity=2)
        second = make_order(status="paid", quantity=1, variant=seed.blue, payment_id="PAYPAL-ORDER-2")

        res = client.get(f"/api/vendors/{seed.vendor.id}/orders", headers=headers_for(seed.owner))
        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 2
        assert {line["orderId"] for line in body["orders"]} == {first.id, second.id}

        line = next(x for x in body["orders"] if x["orderId"] == first.id)
        assert line["productTitle"] == "Canvas Tote"
        assert line["variantId"] == seed.red.id
        assert (line["quantity"], line["unitPrice"], line["totalPrice"]) == (2, 1999, 3998)
        assert line["userEmail"] == "buyer@example.com"
        assert line["status"] == "pending"

    def test_status_filter(self, client, seed, make_order, headers_for):
        make_order()
        make_order(status="paid", payment_id="PAYPAL-ORDER-2")
        res = client.get(f"/api/vendors/{seed.vendor.id}/orders?status=paid", headers=headers_for(seed.owner))
        assert [line["status"] for line in res.get_json()["orders"]] == ["paid"]

    def test_access(self, client, seed, make_order, headers_for):
        make_order()
        url = f"/api/vendors/{seed.vendor.id}/orders"
        assert client.get(url).status_code == 401
        assert client.get(url, headers=headers_for(seed.buyer)).status_code == 403
        assert client.get(url, headers=headers_for(seed.admin)).status_code == 200
        assert client.get("/api/vendors/999/orders", headers=headers_for(seed.owner)).status_code == 404

    def test_empty(self, client, seed, headers_for):
        body = client.get(f"/api/vendors/{seed.vendor.id}/orders", headers=headers_for(seed.owner)).get_json()
        assert body == {"ok": True, "orders": [], "total": 0}
