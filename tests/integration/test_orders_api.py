"""
Integration tests for the orders JSON API.
"""
from orderdesk.models import Order
from orderdesk.services import inventory_service


def _draft_body(product_id, quantity=1, **extra):
    return {
        'items': [{
            'product_id': product_id,
            'product_name': 'T-Shirt',
            'unit_price': '10.00',
            'quantity': quantity,
        }],
        **extra,
    }


class TestResolveItem:
    """POST /api/orders/items"""

    def test_resolve_simple_item(self, client, simple_product):
        response = client.post('/api/orders/items', json={'product_id': simple_product.id, 'quantity': 3})

        assert response.status_code == 200
        data = response.get_json()
        assert data['item']['unit_price'] == '10.00'
        assert data['item']['total_price'] == '30.00'

    def test_resolve_into_draft(self, client, weight_product):
        response = client.post('/api/orders/items', json={
            'product_id': weight_product.id,
            'weight': '500',
            'draft': {'items': [], 'tax_rate': '10'},
        })

        assert response.status_code == 200
        data = response.get_json()
        assert len(data['draft']['items']) == 1
        assert data['draft']['items'][0]['weight_grams'] == '500'
        assert data['totals']['subtotal'] == '12.00'
        assert data['totals']['total_amount'] == '13.20'

    def test_validation_messages(self, client, variable_product):
        response = client.post('/api/orders/items', json={'product_id': variable_product.id})

        assert response.status_code == 422
        data = response.get_json()
        assert data['status'] == 'error'
        assert data['errors'] == ['Please select a variant']

    def test_unknown_product(self, client, db):
        response = client.post('/api/orders/items', json={'product_id': 999})
        assert response.status_code == 404

    def test_body_must_be_json_object(self, client, db):
        response = client.post('/api/orders/items', data='nope', content_type='text/plain')
        assert response.status_code == 422


class TestPreview:
    """POST /api/orders/preview"""

    def test_preview_totals(self, client, simple_product):
        body = _draft_body(
            simple_product.id, quantity=10,
            discount={'type': 'percentage', 'value': '10'},
            tax_rate='8',
            shipping_amount='5',
        )
        response = client.post('/api/orders/preview', json={'draft': body})

        assert response.status_code == 200
        totals = response.get_json()['totals']
        assert totals == {
            'subtotal': '100.00',
            'coupon_discount_amount': '0.00',
            'discount_amount': '10.00',
            'points_discount_amount': '0.00',
            'tax_amount': '7.20',
            'shipping_amount': '5.00',
            'total_amount': '102.20',
        }

    def test_preview_rejects_bad_discount(self, client, simple_product):
        body = _draft_body(simple_product.id, discount={'type': 'percentage', 'value': '150'})
        response = client.post('/api/orders/preview', json={'draft': body})

        assert response.status_code == 422
        assert 'Percentage discount cannot exceed 100' in response.get_json()['errors']


class TestPoints:
    """POST /api/orders/points"""

    def test_request_clamped_to_balance(self, client, simple_product, customer_with_points, loyalty_enabled):
        body = _draft_body(simple_product.id, quantity=20, customer_id=customer_with_points.id)
        response = client.post('/api/orders/points', json={'draft': body, 'points_to_redeem': 1000})

        assert response.status_code == 200
        data = response.get_json()
        assert data['available_points'] == 500
        assert data['draft']['points_to_redeem'] == 500
        assert data['totals']['points_discount_amount'] == '5.00'
        assert data['errors'] == ['Insufficient points available']

    def test_use_all_points(self, client, simple_product, customer_with_points, loyalty_enabled):
        body = _draft_body(simple_product.id, quantity=2, customer_id=customer_with_points.id)
        body['items'][0]['unit_price'] = '4.00'
        response = client.post('/api/orders/points', json={'draft': body, 'use_all_points': True})

        data = response.get_json()
        # 50% of 8.00 caps the discount below the 500 points held
        assert data['draft']['use_all_points'] is True
        assert data['draft']['points_to_redeem'] == 400
        assert data['totals']['points_discount_amount'] == '4.00'
        assert data['errors'] == []

    def test_below_minimum_reported(self, client, simple_product, customer_with_points, loyalty_enabled):
        body = _draft_body(simple_product.id, quantity=2, customer_id=customer_with_points.id)
        response = client.post('/api/orders/points', json={'draft': body, 'points_to_redeem': 50})

        assert response.get_json()['errors'] == ['Minimum 100 points required for redemption']

    def test_requires_customer(self, client, simple_product, loyalty_enabled):
        response = client.post('/api/orders/points', json={'draft': _draft_body(simple_product.id), 'points_to_redeem': 100})
        assert response.status_code == 422


class TestCreateAndEdit:
    """POST /api/orders, GET and PUT /api/orders/<id>"""

    def test_create_order(self, client, session, simple_product):
        body = _draft_body(simple_product.id, quantity=2, shipping_amount='3.50')
        # Client-side totals are ignored
        body['total_amount'] = '0.01'

        response = client.post('/api/orders', json={
            'draft': body, 'email': 'buyer@example.com', 'idempotency_key': 'abc-123'
        })

        assert response.status_code == 201
        order = response.get_json()['order']
        assert order['order_number'].startswith('ORD-')
        assert order['subtotal'] == '20.00'
        assert order['total_amount'] == '23.50'
        assert order['status'] == 'pending'
        assert order['items'][0]['quantity'] == 2

        duplicate = client.post('/api/orders', json={
            'draft': body, 'email': 'buyer@example.com', 'idempotency_key': 'abc-123'
        })
        assert duplicate.status_code == 409
        assert session.query(Order).count() == 1

    def test_create_empty_order(self, client, db):
        response = client.post('/api/orders', json={'draft': {'items': []}, 'email': 'a@example.com'})

        assert response.status_code == 422
        assert response.get_json()['errors'] == ['Please add at least one product to the order']

    def test_get_missing_order(self, client, db):
        response = client.get('/api/orders/12345')

        assert response.status_code == 404
        assert response.get_json()['status'] == 'error'

    def test_edit_and_complete(self, client, simple_product, customer, loyalty_enabled):
        created = client.post('/api/orders', json={
            'draft': _draft_body(simple_product.id, quantity=5, customer_id=customer.id)
        }).get_json()['order']

        response = client.put(f"/api/orders/{created['id']}", json={
            'discount_amount': '5', 'shipping_amount': '2', 'status': 'completed'
        })

        assert response.status_code == 200
        order = response.get_json()['order']
        assert order['discount_amount'] == '5.00'
        assert order['total_amount'] == '47.00'
        assert order['status'] == 'completed'

        points = client.get(f'/api/loyalty/points/{customer.id}').get_json()['points']
        assert points['available_points'] == 50

        fetched = client.get(f"/api/orders/{created['id']}").get_json()['order']
        assert fetched['total_amount'] == '47.00'

    def test_edit_rejects_bad_amount(self, client, simple_product):
        created = client.post('/api/orders', json={
            'draft': _draft_body(simple_product.id), 'email': 'a@example.com'
        }).get_json()['order']

        response = client.put(f"/api/orders/{created['id']}", json={'shipping_amount': 'free'})
        assert response.status_code == 422

    def test_bad_status_leaves_amounts_untouched(self, client, simple_product):
        created = client.post('/api/orders', json={
            'draft': _draft_body(simple_product.id), 'email': 'a@example.com'
        }).get_json()['order']

        response = client.put(f"/api/orders/{created['id']}", json={'discount_amount': '5', 'status': 'bogus'})

        assert response.status_code == 422
        assert response.get_json()['errors'] == ['Invalid order status: bogus']
        fetched = client.get(f"/api/orders/{created['id']}").get_json()['order']
        assert fetched['discount_amount'] == '0.00'
        assert fetched['total_amount'] == '10.00'

    def test_tax_rate_keeps_three_decimals(self, client, simple_product):
        created = client.post('/api/orders', json={
            'draft': _draft_body(simple_product.id, tax_rate='8.875'), 'email': 'a@example.com'
        }).get_json()['order']

        fetched = client.get(f"/api/orders/{created['id']}").get_json()['order']
        assert fetched['tax_rate'] == '8.875'
        assert fetched['tax_amount'] == '0.89'

    def test_out_of_stock(self, client, session, simple_product, stock_enabled):
        inventory_service.set_stock_level(session, simple_product.id, quantity=1)
        session.commit()

        response = client.post('/api/orders', json={
            'draft': _draft_body(simple_product.id, quantity=2), 'email': 'a@example.com'
        })

        assert response.status_code == 409
        assert response.get_json()['message'] == 'Insufficient stock for T-Shirt: required 2, available 1'
        assert session.query(Order).count() == 0


class TestMetrics:

    def test_metrics_endpoint(self, client, db):
        response = client.get('/metrics')

        assert response.status_code == 200
        assert b'http_requests_total' in response.data
        assert b'orders_created_total' in response.data
