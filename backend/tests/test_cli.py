from retail_ledger.extensions import db
from retail_ledger.models import Customer, Product, Supplier

from conftest import movements_for


def test_add_product_posts_opening_stock(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        'catalog', 'add-product', '--sku', 'CLI-1', '--name', 'Widget',
        '--price', '10', '--cost', '6', '--stock', '25',
    ])

    assert result.exit_code == 0, result.output
    product = db.session.query(Product).filter_by(sku='CLI-1').one()
    rows = movements_for(product)
    assert len(rows) == 1
    assert rows[0].reason == 'Opening stock'
    assert float(product.stock) == 25.0


def test_add_product_duplicate_sku(app, db_session):
    runner = app.test_cli_runner()
    runner.invoke(args=['catalog', 'add-product', '--sku', 'DUP', '--name', 'One'])

    result = runner.invoke(args=['catalog', 'add-product', '--sku', 'DUP', '--name', 'Two'])

    assert result.exit_code != 0
    assert "already exists" in result.output


def test_add_supplier_and_customer(app, db_session):
    runner = app.test_cli_runner()

    assert runner.invoke(args=['catalog', 'add-supplier', '--name', 'Acme']).exit_code == 0
    assert runner.invoke(args=[
        'catalog', 'add-customer', '--name', 'Jane', '--credit-limit', '500',
    ]).exit_code == 0

    assert db.session.query(Supplier).filter_by(name='Acme').count() == 1
    customer = db.session.query(Customer).filter_by(name='Jane').one()
    assert float(customer.credit_limit) == 500.0


def test_ledger_commands(app, make_product):
    product = make_product(stock=4)
    runner = app.test_cli_runner()

    verify = runner.invoke(args=['ledger', 'verify'])
    assert verify.exit_code == 0
    assert 'PASS' in verify.output

    history = runner.invoke(args=['ledger', 'history', '--product-id', str(product.id)])
    assert history.exit_code == 0
    assert 'adjustment' in history.output
