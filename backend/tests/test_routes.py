"""HTTP surface: status codes, error envelopes and camelCase input."""

from decimal import Decimal

from conftest import stock_of


def test_health(client, db_session):
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.json['status'] == 'ok'
    assert response.json['database']['status'] == 'healthy'


def test_sale_round_trip(client, make_product, make_customer):
    product = make_product(stock=10)
    customer = make_customer()

    response = client.post('/api/sales', json={
        'items': [{'productId': product.id, 'quantity': 5, 'unitPrice': 10}],
        'customerId': customer.id,
        'paymentMethod': 'credit',
    })
    assert response.status_code == 201
    sale = response.json['sale']
    assert sale['total'] == 50.0
    assert sale['items'][0]['quantity'] == 5.0
    assert stock_of(product) == 5

    fetched = client.get(f"/api/sales/{sale['id']}")
    assert fetched.status_code == 200
    assert fetched.json['sale']['order_number'] == sale['order_number']

    listed = client.get('/api/sales?per_page=5')
    assert listed.json['pagination']['items_per_page'] == 5
    assert listed.json['pagination']['total_items'] == 1

    details = client.patch(f"/api/sales/{sale['id']}", json={'paymentMethod': 'cash'})
    assert details.status_code == 200
    assert details.json['sale']['current_balance'] == 0.0


def test_insufficient_stock_envelope(client, make_product):
    product = make_product(stock=2)

    response = client.post('/api/sales', json={
        'items': [{'product_id': product.id, 'quantity': 3, 'unit_price': 10}],
    })

    assert response.status_code == 409
    assert response.json['error'].startswith('Insufficient stock')
    assert response.json['details']['available'] == 2.0
    assert stock_of(product) == 2


def test_validation_envelope(client, db_session):
    response = client.post('/api/sales', json={'items': []})
    assert response.status_code == 400
    assert 'items' in response.json['error']


def test_missing_sale_is_404(client, db_session):
    response = client.get('/api/sales/99999')
    assert response.status_code == 404


def test_return_and_revert(client, make_product):
    product = make_product(stock=10)
    sale = client.post('/api/sales', json={
        'items': [{'product_id': product.id, 'quantity': 4, 'unit_price': 10}],
    }).json['sale']

    returned = client.post(f"/api/sales/{sale['id']}/returns", json={
        'items': [{'productId': product.id, 'quantity': 1, 'reason': 'damaged box'}],
        'refundAmount': 10,
        'restockItems': True,
    })
    assert returned.status_code == 201
    assert returned.json['sale_total'] == 30.0
    assert stock_of(product) == 7

    too_many = client.post(f"/api/sales/{sale['id']}/returns", json={
        'items': [{'product_id': product.id, 'quantity': 5}],
    })
    assert too_many.status_code == 400

    reverted = client.post(f"/api/sales/{sale['id']}/revert", json={'reason': 'cancelled'})
    assert reverted.status_code == 200
    assert reverted.json['new_status'] == 'cancelled'
    assert stock_of(product) == 10

    again = client.post(f"/api/sales/{sale['id']}/revert", json={'reason': 'again'})
    assert again.status_code == 409


def test_purchase_order_flow(client, make_product, make_supplier):
    product = make_product(stock=0)
    supplier = make_supplier()

    created = client.post('/api/purchase-orders', json={
        'supplierId': supplier.id,
        'items': [{'productId': product.id, 'quantity': 6, 'unitPrice': '2.00'}],
        'expectedDelivery': '2026-12-01',
    })
    assert created.status_code == 201
    po = created.json['purchase_order']
    assert po['status'] == 'draft'

    updated = client.put(f"/api/purchase-orders/{po['id']}", json={'status': 'sent', 'notes': 'emailed'})
    assert updated.status_code == 200
    assert updated.json['purchase_order']['notes'] == 'emailed'

    received = client.post(f"/api/purchase-orders/{po['id']}/receive", json={
        'items': [{'productId': product.id, 'quantityReceived': 6, 'condition': 'good'}],
    })
    assert received.status_code == 200
    assert received.json['purchase_order']['status'] == 'received'
    assert stock_of(product) == 6

    deleted = client.delete(f"/api/purchase-orders/{po['id']}")
    assert deleted.status_code == 409


def test_quotation_flow(client, make_product, make_customer):
    product = make_product(stock=5)
    customer = make_customer()

    created = client.post('/api/quotations', json={
        'customerId': customer.id,
        'items': [{'productId': product.id, 'quantity': 2, 'unitPrice': 15}],
    })
    assert created.status_code == 201
    quotation = created.json['quotation']

    sent = client.post(f"/api/quotations/{quotation['id']}/send")
    assert sent.json['quotation']['status'] == 'sent'

    converted = client.post(f"/api/quotations/{quotation['id']}/convert")
    assert converted.status_code == 201
    assert converted.json['sale']['payment_method'] == 'credit'
    assert stock_of(product) == 3

    fetched = client.get(f"/api/quotations/{quotation['id']}")
    assert fetched.json['quotation']['status'] == 'accepted'
    assert fetched.json['quotation']['converted_sale_id'] == converted.json['sale']['id']


def test_outsourcing_flow(client, make_product, make_supplier):
    product = make_product(stock=0)
    supplier = make_supplier()

    created = client.post('/api/outsourcing', json={
        'productId': product.id,
        'supplierId': supplier.id,
        'quantity': 2,
        'costPerUnit': '3.00',
    })
    assert created.status_code == 201
    order = created.json['order']

    delivered = client.patch(f"/api/outsourcing/{order['id']}/status", json={'status': 'delivered'})
    assert delivered.status_code == 200
    assert stock_of(product) == Decimal(2)

    by_supplier = client.get(f"/api/outsourcing/supplier/{supplier.id}")
    assert [o['id'] for o in by_supplier.json['orders']] == [order['id']]


def test_inventory_endpoints(client, make_product):
    product = make_product(stock=3)

    adjusted = client.post('/api/inventory/adjust', json={
        'productId': product.id,
        'quantity': -1,
        'movementType': 'damage',
        'reason': 'dropped',
    })
    assert adjusted.status_code == 201
    assert adjusted.json['movement']['balance_after'] == 2.0

    movements = client.get(f"/api/inventory/movements?product_id={product.id}&sort=asc")
    assert [m['movement_type'] for m in movements.json['movements']] == ['adjustment', 'damage']

    verified = client.get('/api/inventory/verify')
    assert verified.json['ok'] is True

    bad = client.post('/api/inventory/adjust', json={'product_id': product.id, 'quantity': 1, 'movement_type': 'sale'})
    assert bad.status_code == 400
