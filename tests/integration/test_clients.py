"""
Integration tests for clients, direct point redemption and notifications.
"""

from datetime import date, timedelta

import pytest

from gestionfarma.exceptions import (
    BusinessLogicError, InsufficientPointsError, NotFoundError, ValidationError
)
from gestionfarma.models import (
    Customer, Notification, NotificationType, NotificationStatus, RedeemableProduct, RedeemableStatus
)
from gestionfarma.services import customer_service, loyalty_service, notification_service


class TestCustomers:

    def test_create_notifies_new_client(self, session, ctx):
        customer = customer_service.create_customer(session, ctx, {
            'name': '  Jorge Huamán ', 'document_number': '70112233', 'birth_date': '1990-05-04'
        })
        assert customer.name == 'Jorge Huamán'
        assert customer.points == 0
        assert customer.birth_date == date(1990, 5, 4)

        notification = session.query(Notification).filter_by(type=NotificationType.NEW_CLIENT).one()
        assert notification.reference_id == customer.id
        assert 'Jorge Huamán' in notification.message

    def test_name_is_required(self, session, ctx):
        with pytest.raises(ValidationError):
            customer_service.create_customer(session, ctx, {'name': '   '})

    def test_duplicate_document(self, session, ctx, customer):
        with pytest.raises(BusinessLogicError):
            customer_service.create_customer(session, ctx, {'name': 'Otra', 'document_number': '45678912'})

    def test_same_document_in_other_site(self, session, other_ctx, customer):
        other = customer_service.create_customer(session, other_ctx, {'name': 'Otra', 'document_number': '45678912'})
        assert other.site_id == other_ctx.site_id

    def test_search(self, session, ctx, customer):
        assert [c.id for c in customer_service.search_customers(session, ctx, 'quispe')] == [customer.id]
        assert [c.id for c in customer_service.search_customers(session, ctx, '4567')] == [customer.id]
        assert customer_service.search_customers(session, ctx, 'nadie') == []

    def test_get_customer_of_other_site(self, session, other_ctx, customer):
        with pytest.raises(NotFoundError):
            customer_service.get_customer(session, other_ctx, customer.id)


class TestDirectRedemption:

    def test_redeem_directly(self, session, ctx, customer, redeemable):
        entry = loyalty_service.redeem_directly(session, ctx, customer.id, redeemable.id)

        assert entry.points_used == 30
        assert entry.sale_id is None
        assert session.get(Customer, customer.id).points == 70
        assert session.get(RedeemableProduct, redeemable.id).stock == 1
        assert [h.id for h in loyalty_service.redemption_history(session, ctx, customer.id)] == [entry.id]

    def test_insufficient_points(self, session, ctx, customer, redeemable):
        session.get(Customer, customer.id).points = 29
        session.commit()

        with pytest.raises(InsufficientPointsError) as exc:
            loyalty_service.redeem_directly(session, ctx, customer.id, redeemable.id)
        assert exc.value.required == 30
        assert exc.value.available == 29
        assert session.get(RedeemableProduct, redeemable.id).stock == 2

    def test_exhausted_after_last_unit(self, session, ctx, customer, redeemable):
        session.get(Customer, customer.id).points = 1000
        session.commit()

        loyalty_service.redeem_directly(session, ctx, customer.id, redeemable.id)
        loyalty_service.redeem_directly(session, ctx, customer.id, redeemable.id)

        item = session.get(RedeemableProduct, redeemable.id)
        assert item.stock == 0
        assert item.status == RedeemableStatus.EXHAUSTED
        with pytest.raises(BusinessLogicError):
            loyalty_service.redeem_directly(session, ctx, customer.id, redeemable.id)
        assert session.get(Customer, customer.id).points == 940

    def test_catalog_puts_affordable_first(self, session, ctx, site, customer, promotion, redeemable):
        expensive = RedeemableProduct(
            site_id=site.id, company_id=site.company_id, promotion_id=promotion.id,
            name='Mochila', points_required=500, stock=1, status=RedeemableStatus.AVAILABLE
        )
        cheap = RedeemableProduct(
            site_id=site.id, company_id=site.company_id, promotion_id=promotion.id,
            name='Llavero', points_required=10, stock=0, status=RedeemableStatus.EXHAUSTED
        )
        session.add_all([expensive, cheap])
        session.commit()

        items = loyalty_service.list_redeemables(session, ctx, session.get(Customer, customer.id))
        assert [i.name for i in items] == ['Termo de regalo', 'Mochila']


class TestNotifications:

    def test_expirations_alert_once(self, session, ctx, make_product):
        today = date.today()
        expired = make_product(name='Jarabe', expiration_date=today - timedelta(days=1))
        soon = make_product(name='Crema', expiration_date=today + timedelta(days=10))
        make_product(name='Vitaminas', expiration_date=today + timedelta(days=90))

        assert notification_service.check_product_expirations(session, ctx, days=30) == 2
        assert notification_service.check_product_expirations(session, ctx, days=30) == 0

        by_type = {n.type: n for n in session.query(Notification).all()}
        assert by_type[NotificationType.EXPIRED_PRODUCT].reference_id == expired.id
        assert by_type[NotificationType.EXPIRING_PRODUCT].reference_id == soon.id
        assert '10 día(s)' in by_type[NotificationType.EXPIRING_PRODUCT].message

    def test_read_alert_can_fire_again(self, session, ctx, make_product):
        make_product(name='Jarabe', expiration_date=date.today() - timedelta(days=1))
        notification_service.check_product_expirations(session, ctx)
        assert notification_service.mark_all_read(session, ctx) == 1
        assert notification_service.count_unread(session, ctx) == 0

        assert notification_service.check_product_expirations(session, ctx) == 1

    def test_mark_read(self, session, ctx, customer):
        created = notification_service.notify_new_client(session, ctx, customer)
        assert notification_service.count_unread(session, ctx) == 1

        notification = notification_service.mark_read(session, ctx, created.id)
        assert notification.status == NotificationStatus.READ
        assert notification_service.list_notifications(session, ctx) == []
        assert len(notification_service.list_notifications(session, ctx, unread_only=False)) == 1

    def test_notifications_are_tenant_scoped(self, session, ctx, other_ctx, customer):
        created = notification_service.notify_new_client(session, ctx, customer)
        assert notification_service.count_unread(session, other_ctx) == 0
        with pytest.raises(NotFoundError):
            notification_service.mark_read(session, other_ctx, created.id)
