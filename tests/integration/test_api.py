"""
HTTP tests for the JSON blueprints (login/tenant guards, POS flow, caja, clients, stats).
"""

from datetime import date, timedelta
from decimal import Decimal

from gestionfarma.models import CommissionRecord, Customer, Notification, Sale, SaleStatus
from gestionfarma.services import commission_service
from gestionfarma.services import sale_draft_service as cart_service
from gestionfarma.services.sale_draft_service import current_stock
from gestionfarma.services.sales_service import finalize_sale


class TestGuards:

    def test_login_required(self, client):
        response = client.get('/pos/cart')
        assert response.status_code == 401
        assert response.get_json()['status'] == 'error'

    def test_stale_session_is_logged_out(self, client):
        with client.session_transaction() as sess:
            sess['user_id'] = 999999
        assert client.get('/caja/current').status_code == 401

    def test_tenant_required(self, client, session, user):
        user_id = user.id
        user.site_id = None
        user.company_id = None
        session.commit()
        with client.session_transaction() as sess:
            sess['user_id'] = user_id

        response = client.get('/pos/cart')
        assert response.status_code == 400
        assert 'sede' in response.get_json()['message']

    def test_unknown_route_is_json(self, authenticated_client):
        response = authenticated_client.get('/no-existe')
        assert response.status_code == 404
        assert response.get_json()['status'] == 'error'


class TestPosFlow:

    def test_cart_flow(self, authenticated_client, session, product, customer):
        product_id = product.id
        customer_id = customer.id

        response = authenticated_client.post('/pos/cart/items', json={'product_id': product_id, 'quantity': 2})
        assert response.status_code == 201
        cart = response.get_json()['cart']
        assert cart['lines'][0]['quantity'] == 2
        assert cart['totals']['subtotal'] == '10.00'

        response = authenticated_client.patch(f'/pos/cart/items/{product_id}', json={'quantity': 4})
        assert response.status_code == 200
        assert response.get_json()['cart']['lines'][0]['subtotal'] == '20.00'

        response = authenticated_client.post('/pos/cart/client', json={'client_id': customer_id})
        assert response.get_json()['cart']['client']['points'] == 100

        response = authenticated_client.get('/pos/cart/totals?payment_method=EFECTIVO&amount_tendered=50')
        totals = response.get_json()['totals']
        assert totals['amount_due'] == '20.00'
        assert totals['change'] == '30.00'

        response = authenticated_client.post('/pos/cart/finalize', json={
            'payment_method': 'CASH', 'amount_tendered': '50'
        })
        assert response.status_code == 201
        sale = response.get_json()['sale']
        assert sale['client_name'] == 'María Quispe'
        assert sale['points_earned'] == 20
        assert sale['totals']['change'] == '30.00'

        assert session.get(Sale, sale['sale_id']).status == SaleStatus.COMPLETED
        assert session.get(Customer, customer_id).points == 120
        assert current_stock(session, product_id) == 6

    def test_insufficient_stock_is_409(self, authenticated_client, session, product):
        product_id = product.id
        response = authenticated_client.post('/pos/cart/items', json={'product_id': product_id, 'quantity': 50})
        assert response.status_code == 409
        data = response.get_json()
        assert data['required'] == 50
        assert data['available'] == 10
        assert current_stock(session, product_id) == 10

    def test_missing_product_id(self, authenticated_client):
        response = authenticated_client.post('/pos/cart/items', json={})
        assert response.status_code == 400

    def test_patch_without_changes(self, authenticated_client, product):
        product_id = product.id
        authenticated_client.post('/pos/cart/items', json={'product_id': product_id})
        response = authenticated_client.patch(f'/pos/cart/items/{product_id}', json={})
        assert response.status_code == 400

    def test_change_unit_over_http(self, authenticated_client, make_product):
        product_id = make_product(stock=30, box_units=12, box_price=Decimal('55.00')).id
        authenticated_client.post('/pos/cart/items', json={'product_id': product_id})
        response = authenticated_client.patch(f'/pos/cart/items/{product_id}', json={'new_unit': 'BOX'})
        line = response.get_json()['cart']['lines'][0]
        assert line['unit'] == 'Caja'
        assert line['subtotal'] == '55.00'

    def test_quantity_and_unit_in_one_patch(self, authenticated_client, session, product):
        product_id = product.id
        authenticated_client.post('/pos/cart/items', json={'product_id': product_id})

        # Two blisters need 20 units, only 10 exist: nothing may change
        response = authenticated_client.patch(f'/pos/cart/items/{product_id}', json={
            'new_unit': 'BLISTER', 'quantity': 2
        })
        assert response.status_code == 409
        assert response.get_json()['required'] == 20

        line = authenticated_client.get('/pos/cart').get_json()['cart']['lines'][0]
        assert line['unit'] == 'Unidad'
        assert line['quantity'] == 1
        assert line['subtotal'] == '5.00'
        assert current_stock(session, product_id) == 9

        response = authenticated_client.patch(f'/pos/cart/items/{product_id}', json={
            'new_unit': 'BLISTER', 'quantity': 1
        })
        assert response.status_code == 200
        line = response.get_json()['cart']['lines'][0]
        assert line['unit'] == 'Blister'
        assert line['subtotal'] == '45.00'
        assert current_stock(session, product_id) == 0

    def test_cancel(self, authenticated_client, session, product):
        product_id = product.id
        authenticated_client.post('/pos/cart/items', json={'product_id': product_id, 'quantity': 3})
        response = authenticated_client.post('/pos/cart/cancel')
        assert response.status_code == 200
        assert response.get_json()['cart']['lines'] == []
        assert current_stock(session, product_id) == 10

    def test_finalize_empty_cart(self, authenticated_client):
        response = authenticated_client.post('/pos/cart/finalize', json={})
        assert response.status_code == 400

    def test_receipt_pdf(self, authenticated_client, product):
        product_id = product.id
        authenticated_client.post('/pos/cart/items', json={'product_id': product_id})
        sale_id = authenticated_client.post('/pos/cart/finalize', json={}).get_json()['sale']['sale_id']

        response = authenticated_client.get(f'/pos/sales/{sale_id}/receipt.pdf')
        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')

        response = authenticated_client.get(f'/pos/sales/{sale_id}/receipt.pdf?download=1')
        assert 'attachment' in response.headers['Content-Disposition']

    def test_receipt_of_pending_sale_is_404(self, authenticated_client, product):
        product_id = product.id
        sale_id = authenticated_client.post(
            '/pos/cart/items', json={'product_id': product_id}
        ).get_json()['cart']['sale_id']
        assert authenticated_client.get(f'/pos/sales/{sale_id}/receipt.pdf').status_code == 404

    def test_redeemables(self, authenticated_client, customer, redeemable):
        customer_id = customer.id
        response = authenticated_client.get(f'/pos/redeemables?client_id={customer_id}')
        data = response.get_json()
        assert data['client_points'] == 100
        assert data['items'][0]['affordable'] is True


class TestCajaApi:

    def test_open_sell_close(self, authenticated_client, product):
        product_id = product.id
        response = authenticated_client.post('/caja/open', json={'opening_float': '50'})
        assert response.status_code == 201
        register_id = response.get_json()['register']['id']

        assert authenticated_client.post('/caja/open', json={'opening_float': '10'}).status_code == 409

        authenticated_client.post('/pos/cart/items', json={'product_id': product_id, 'quantity': 3})
        authenticated_client.post('/pos/cart/finalize', json={'payment_method': 'CASH'})

        data = authenticated_client.get(f'/caja/{register_id}/summary?physical_cash=60').get_json()
        assert data['summary']['expected_cash'] == '65.00'
        assert data['preview']['shortfall'] == '5.00'

        response = authenticated_client.post(f'/caja/{register_id}/close', json={'physical_cash': '70'})
        assert response.status_code == 200
        register = response.get_json()['register']
        assert register['status'] == 'Cerrada'
        assert register['surplus'] == '5.00'
        assert register['shortfall'] == '0.00'

        assert authenticated_client.get('/caja/current').get_json()['register'] is None
        assert len(authenticated_client.get('/caja/history').get_json()['registers']) == 1

    def test_close_requires_counted_cash(self, authenticated_client):
        register_id = authenticated_client.post('/caja/open', json={}).get_json()['register']['id']
        assert authenticated_client.post(f'/caja/{register_id}/close', json={}).status_code == 400


class TestClientsApi:

    def test_create_search_redeem(self, authenticated_client, session, redeemable):
        redeemable_id = redeemable.id
        response = authenticated_client.post('/clients/', json={'name': 'Rosa Mamani', 'document_number': '11223344'})
        assert response.status_code == 201
        client_id = response.get_json()['client']['id']

        clients = authenticated_client.get('/clients/?q=mamani').get_json()['clients']
        assert [c['id'] for c in clients] == [client_id]

        # New clients start with no points
        response = authenticated_client.post(f'/clients/{client_id}/redeem', json={'redeemable_id': redeemable_id})
        assert response.status_code == 409

        session.get(Customer, client_id).points = 40
        session.commit()
        response = authenticated_client.post(f'/clients/{client_id}/redeem', json={'redeemable_id': redeemable_id})
        assert response.status_code == 201
        assert response.get_json()['client']['points'] == 10

        history = authenticated_client.get(f'/clients/{client_id}/history').get_json()['history']
        assert len(history) == 1

    def test_client_of_other_site(self, authenticated_client, session, other_site):
        other = Customer(site_id=other_site.id, company_id=other_site.company_id, name='Ajeno', points=0, active=True)
        session.add(other)
        session.commit()
        other_id = other.id
        assert authenticated_client.get(f'/clients/{other_id}').status_code == 404


class TestNotificationsAndStats:

    def test_feed_and_read(self, authenticated_client):
        authenticated_client.post('/clients/', json={'name': 'Rosa Mamani'})

        data = authenticated_client.get('/notifications').get_json()
        assert data['unread'] == 1
        notification_id = data['notifications'][0]['id']

        response = authenticated_client.post(f'/notifications/{notification_id}/read')
        assert response.get_json()['notification']['status'] == 'leido'
        assert authenticated_client.get('/notifications').get_json()['unread'] == 0
        assert len(authenticated_client.get('/notifications?all=1').get_json()['notifications']) == 1

    def test_header_stats(self, authenticated_client, product):
        product_id = product.id
        authenticated_client.post('/pos/cart/items', json={'product_id': product_id, 'quantity': 9})
        authenticated_client.post('/pos/cart/finalize', json={})

        stats = authenticated_client.get('/stats/header').get_json()['stats']
        assert stats['sales_count'] == 1
        assert stats['sales_total'] == '45.00'
        assert stats['low_stock_count'] == 1
        # Low stock alert raised by the sale
        assert stats['unread_notifications'] == 1

    def test_metrics_endpoint(self, authenticated_client, product):
        product_id = product.id
        authenticated_client.post('/pos/cart/items', json={'product_id': product_id})
        authenticated_client.post('/pos/cart/finalize', json={'payment_method': 'YAPE'})

        response = authenticated_client.get('/metrics')
        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert 'http_requests_total' in body
        assert 'pos_sales_completed_total{payment_method="MOBILE_WALLET"}' in body


class TestCommissionsApi:

    def test_rules_and_report(self, authenticated_client, product):
        product_id = product.id
        response = authenticated_client.post('/commissions/rules', json={
            'product_id': product_id, 'type': 'PERCENTAGE', 'value': '10', 'start_date': '2024-01-01'
        })
        assert response.status_code == 201
        rule_id = response.get_json()['rule']['id']
        assert response.get_json()['rule']['type'] == 'porcentaje'

        authenticated_client.post('/pos/cart/items', json={'product_id': product_id, 'quantity': 2})
        authenticated_client.post('/pos/cart/finalize', json={})

        report = authenticated_client.get('/commissions/report').get_json()['report']
        assert report['count'] == 1
        assert report['total'] == '1.00'

        response = authenticated_client.delete(f'/commissions/rules/{rule_id}')
        assert response.get_json()['rule']['active'] is False
        assert authenticated_client.get('/commissions/rules?active=1').get_json()['rules'] == []

    def test_invalid_rule(self, authenticated_client, product):
        product_id = product.id
        response = authenticated_client.post('/commissions/rules', json={
            'product_id': product_id, 'type': 'PERCENTAGE', 'value': '-3'
        })
        assert response.status_code == 400


class TestCliCommands:

    def test_check_expirations(self, app, session, site, make_product):
        make_product(name='Jarabe', expiration_date=date.today() - timedelta(days=2))
        site_id = site.id

        result = app.test_cli_runner().invoke(args=['check-expirations', '--site-id', str(site_id)])
        assert result.exit_code == 0
        assert '1 notificaciones' in result.output
        assert session.query(Notification).count() == 1

    def test_backfill_commissions(self, app, session, ctx, product):
        cart_service.add_item(session, ctx, product.id, quantity=3)
        finalize_sale(session, ctx)
        commission_service.create_rule(session, ctx, {
            'product_id': product.id, 'type': 'FIXED_AMOUNT', 'value': '1', 'start_date': '2024-01-01'
        })

        runner = app.test_cli_runner()
        result = runner.invoke(args=['backfill-commissions'])
        assert result.exit_code == 0
        assert '1 comisiones' in result.output
        assert session.query(CommissionRecord).count() == 1

        assert '0 comisiones' in runner.invoke(args=['backfill-commissions']).output
