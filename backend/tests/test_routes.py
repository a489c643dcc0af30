# Overview: Pytest coverage for the HTTP surface: envelopes, roles and status codes.

"""
Route Tests

Errors always use the bilingual envelope:
    {"isSuccess": false, "code": ..., "message": {"messageEn", "messageKh"}, "details": ...}
"""

from shopstock.extensions import db
from shopstock.models import StockMovement
from shopstock.time_utils import utcnow

from conftest import auth_headers, reload


def _assert_envelope(response, status, code):
    assert response.status_code == status
    body = response.get_json()
    assert body["isSuccess"] is False
    assert body["code"] == code
    assert body["message"]["messageEn"]
    assert body["message"]["messageKh"]
    assert "details" in body
    return body


class TestAuthentication:

    def test_missing_actor_header(self, client, db_session):
        response = client.post('/api/inventory/adjust', json={})
        _assert_envelope(response, 401, "UNAUTHENTICATED")

    def test_unknown_actor(self, client, db_session):
        response = client.post('/api/inventory/adjust', json={}, headers={'X-User-Id': '999999'})
        _assert_envelope(response, 401, "UNAUTHENTICATED")

    def test_inactive_actor(self, client, db_session, stock_keeper):
        stock_keeper.is_active = False
        db_session.commit()
        response = client.post('/api/inventory/adjust', json={}, headers=auth_headers(stock_keeper))
        _assert_envelope(response, 401, "UNAUTHENTICATED")

    def test_role_not_allowed(self, client, db_session, cashier, make_product):
        product = make_product(stock=5)
        response = client.post(
            '/api/inventory/adjust',
            json={"product_id": product.id, "quantity": 5, "reason": "Sneaky"},
            headers=auth_headers(cashier),
        )
        body = _assert_envelope(response, 403, "FORBIDDEN")
        assert "StockKeeper" in body["details"]["required_roles"]
        assert reload(product).stock == 5


class TestInventoryRoutes:

    def test_adjust_and_list_movements(self, client, make_product, stock_keeper):
        product = make_product(stock=5, min_stock=2)

        response = client.post(
            '/api/inventory/adjust',
            json={"product_id": product.id, "quantity": -3, "reason": "Damaged"},
            headers=auth_headers(stock_keeper),
        )
        assert response.status_code == 200
        body = response.get_json()
        assert body["isSuccess"] is True
        assert body["product"]["stock"] == 2
        assert body["product"]["main_stock"] == {"quantity": 2, "min_stock": 2, "low_stock": True}
        assert body["movement"]["type"] == "out"

        response = client.get(
            f'/api/inventory/movements?product_id={product.id}',
            headers=auth_headers(stock_keeper),
        )
        assert response.status_code == 200
        assert [m["reason"] for m in response.get_json()["items"]] == ["Damaged", "Initial stock"]

    def test_adjust_insufficient_stock(self, client, make_product, stock_keeper):
        product = make_product(stock=2)
        response = client.post(
            '/api/inventory/adjust',
            json={"product_id": product.id, "quantity": -3, "reason": "Too many"},
            headers=auth_headers(stock_keeper),
        )
        body = _assert_envelope(response, 409, "INSUFFICIENT_STOCK")
        assert body["details"]["on_hand"] == 2

    def test_adjust_validation_error(self, client, make_product, stock_keeper):
        product = make_product(stock=2)
        response = client.post(
            '/api/inventory/adjust',
            json={"product_id": product.id, "quantity": 1},
            headers=auth_headers(stock_keeper),
        )
        _assert_envelope(response, 400, "VALIDATION_ERROR")

    def test_adjust_non_integer_product_id(self, client, make_product, stock_keeper):
        product = make_product(stock=2)
        for bad_id in ([product.id], str(product.id)):
            response = client.post(
                '/api/inventory/adjust',
                json={"product_id": bad_id, "quantity": 5, "reason": "Typed"},
                headers=auth_headers(stock_keeper),
            )
            body = _assert_envelope(response, 400, "VALIDATION_ERROR")
            assert body["details"] == {"field": "product_id"}
        assert reload(product).stock == 2

    def test_adjust_unknown_product(self, client, db_session, stock_keeper):
        response = client.post(
            '/api/inventory/adjust',
            json={"product_id": 999999, "quantity": 1, "reason": "Ghost"},
            headers=auth_headers(stock_keeper),
        )
        _assert_envelope(response, 404, "NOT_FOUND")

    def test_low_stock_and_reconcile(self, client, make_product, manager):
        product = make_product(stock=1, min_stock=5)

        response = client.get('/api/inventory/low-stock', headers=auth_headers(manager))
        assert [p["id"] for p in response.get_json()["items"]] == [product.id]

        response = client.get(f'/api/inventory/{product.id}/reconcile', headers=auth_headers(manager))
        assert response.status_code == 200
        assert response.get_json()["report"]["is_consistent"] is True


class TestSalesRoutes:

    def test_sale_and_refund_flow(self, client, make_product, cashier, manager):
        product = make_product(stock=10, price_cents=300)

        response = client.post(
            '/api/sales',
            json={"items": [{"product_id": product.id, "quantity": 4}], "amount_paid_cents": 2000},
            headers=auth_headers(cashier),
        )
        assert response.status_code == 201
        sale = response.get_json()["sale"]
        assert sale["total_cents"] == 1200
        assert sale["change_cents"] == 800
        assert reload(product).stock == 6

        response = client.get(f'/api/sales/{sale["id"]}', headers=auth_headers(cashier))
        assert response.get_json()["sale"]["sale_number"] == sale["sale_number"]

        # Cashiers sell, managers refund
        response = client.post(f'/api/sales/{sale["id"]}/refund', headers=auth_headers(cashier))
        _assert_envelope(response, 403, "FORBIDDEN")

        response = client.post(f'/api/sales/{sale["id"]}/refund', headers=auth_headers(manager))
        assert response.status_code == 200
        assert response.get_json()["sale"]["status"] == "refunded"
        assert reload(product).stock == 10

        response = client.post(f'/api/sales/{sale["id"]}/refund', headers=auth_headers(manager))
        _assert_envelope(response, 409, "ALREADY_REFUNDED")

    def test_list_sales_rejects_bad_dates(self, client, db_session, cashier):
        response = client.get('/api/sales?start=yesterday', headers=auth_headers(cashier))
        _assert_envelope(response, 400, "VALIDATION_ERROR")

    def test_list_sales(self, client, make_product, cashier):
        product = make_product(stock=10)
        client.post(
            '/api/sales',
            json={"items": [{"product_id": product.id, "quantity": 1}]},
            headers=auth_headers(cashier),
        )
        response = client.get('/api/sales?start=2000-01-01T00:00:00Z', headers=auth_headers(cashier))
        assert response.status_code == 200
        assert response.get_json()["count"] == 1

        today = utcnow().date().isoformat()
        response = client.get(f'/api/sales?start={today}&end={today}', headers=auth_headers(cashier))
        assert response.get_json()["count"] == 1

        response = client.get('/api/sales?end=2000-01-01', headers=auth_headers(cashier))
        assert response.get_json()["count"] == 0

    def test_missing_sale(self, client, db_session, cashier):
        response = client.get('/api/sales/424242', headers=auth_headers(cashier))
        _assert_envelope(response, 404, "NOT_FOUND")


class TestPurchaseOrderRoutes:

    def test_create_receive_and_reject_second_receipt(self, client, make_product, supplier, stock_keeper):
        product = make_product(stock=0)

        response = client.post(
            '/api/purchase-orders',
            json={"supplier_id": supplier.id, "items": [{"product_id": product.id, "quantity": 12, "unit_cost_cents": 90}]},
            headers=auth_headers(stock_keeper),
        )
        assert response.status_code == 201
        po = response.get_json()["purchase_order"]
        assert po["status"] == "pending"
        assert po["total_cents"] == 1080

        response = client.patch(
            f'/api/purchase-orders/{po["id"]}/status',
            json={"status": "received"},
            headers=auth_headers(stock_keeper),
        )
        _assert_envelope(response, 409, "INVALID_STATE")

        response = client.post(f'/api/purchase-orders/{po["id"]}/receive', headers=auth_headers(stock_keeper))
        assert response.status_code == 200
        assert response.get_json()["purchase_order"]["status"] == "received"
        assert reload(product).stock == 12

        count = db.session.query(StockMovement).count()
        response = client.post(f'/api/purchase-orders/{po["id"]}/receive', headers=auth_headers(stock_keeper))
        _assert_envelope(response, 409, "ALREADY_RECEIVED")
        assert db.session.query(StockMovement).count() == count

        response = client.get(f'/api/purchase-orders/{po["id"]}', headers=auth_headers(stock_keeper))
        assert response.get_json()["purchase_order"]["items"][0]["stock_movement_id"] is not None


class TestProductAndSupplierRoutes:

    def test_shop_product_flow(self, client, db_session, shop, seller, other_seller):
        response = client.post(
            '/api/products/shop',
            json={"shop_id": shop.id, "product_data": {"sku": "CUP-1", "name": "Mug", "initial_stock": 3}},
            headers=auth_headers(other_seller),
        )
        _assert_envelope(response, 403, "FORBIDDEN")

        response = client.post(
            '/api/products/shop',
            json={"shop_id": shop.id, "product_data": {"sku": "CUP-1", "name": "Mug", "initial_stock": 3}},
            headers=auth_headers(seller),
        )
        assert response.status_code == 201
        product = response.get_json()["product"]
        assert product["stock"] == 3

        response = client.patch(
            f'/api/products/{product["id"]}/shop/{shop.id}',
            json={"product_data": {"stock": 9}},
            headers=auth_headers(seller),
        )
        assert response.status_code == 200
        assert response.get_json()["product"]["main_stock"]["quantity"] == 9

        response = client.get(f'/api/products/{product["id"]}', headers=auth_headers(seller))
        assert response.get_json()["product"]["stock"] == 9

    def test_catalogue_update(self, client, make_product, stock_keeper, cashier):
        product = make_product(stock=6, sku="PEN-1")
        make_product(sku="PEN-2")

        response = client.patch(f'/api/products/{product.id}', json={"stock": 2}, headers=auth_headers(cashier))
        _assert_envelope(response, 403, "FORBIDDEN")

        response = client.patch(
            f'/api/products/{product.id}',
            json={"name": "Gel Pen", "stock": 2},
            headers=auth_headers(stock_keeper),
        )
        assert response.status_code == 200
        body = response.get_json()["product"]
        assert (body["name"], body["stock"]) == ("Gel Pen", 2)

        response = client.patch(f'/api/products/{product.id}', json={"sku": "PEN-2"}, headers=auth_headers(stock_keeper))
        _assert_envelope(response, 409, "DUPLICATE_SKU")

    def test_duplicate_sku(self, client, db_session, admin):
        payload = {"sku": "DUP-1", "name": "Thing"}
        assert client.post('/api/products', json=payload, headers=auth_headers(admin)).status_code == 201
        response = client.post('/api/products', json=payload, headers=auth_headers(admin))
        _assert_envelope(response, 409, "DUPLICATE_SKU")

    def test_supplier_crud(self, client, db_session, manager):
        response = client.post('/api/suppliers', json={"name": "Mekong Traders"}, headers=auth_headers(manager))
        assert response.status_code == 201
        supplier_id = response.get_json()["supplier"]["id"]

        response = client.patch(
            f'/api/suppliers/{supplier_id}',
            json={"phone": "+855 12 345 678"},
            headers=auth_headers(manager),
        )
        assert response.get_json()["supplier"]["phone"] == "+855 12 345 678"

        response = client.delete(f'/api/suppliers/{supplier_id}', headers=auth_headers(manager))
        assert response.get_json()["supplier"]["is_active"] is False

        listed = client.get('/api/suppliers', headers=auth_headers(manager)).get_json()
        assert listed["count"] == 0
        listed = client.get('/api/suppliers?include_inactive=true', headers=auth_headers(manager)).get_json()
        assert listed["count"] == 1

        response = client.post('/api/suppliers', json={"name": " "}, headers=auth_headers(manager))
        _assert_envelope(response, 400, "VALIDATION_ERROR")


def test_health(client, db_session):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["status"] == "healthy"
