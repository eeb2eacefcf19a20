import pytest
from datetime import date, timedelta
from decimal import Decimal
import uuid

from gestionfarma import create_app
from gestionfarma.context import TenantContext
from gestionfarma.database import get_session, create_all, drop_all
from gestionfarma.models import (
    Company, Site, AppUser, Product, ProductStock, Customer,
    Promotion, RedeemableProduct, RedeemableStatus
)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    app = create_app('config.TestingConfig')
    return app


@pytest.fixture(autouse=True)
def _database(app):
    """Fresh schema for every test, inside an application context."""
    with app.app_context():
        create_all()
        yield
        get_session().remove()
        drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Database session (the scoped session registry)."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def company(session):
    company = Company(name='Botica Central', tax_id='20123456789')
    session.add(company)
    session.commit()
    return company


@pytest.fixture(scope='function')
def site(session, company):
    site = Site(company_id=company.id, name='Sede Principal')
    session.add(site)
    session.commit()
    return site


@pytest.fixture(scope='function')
def user(session, site):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        email=f'cajero-{suffix}@test.com',
        full_name='Cajero Uno',
        active=True,
        site_id=site.id,
        company_id=site.company_id
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def ctx(user, site):
    return TenantContext(user_id=user.id, username=user.full_name, site_id=site.id, company_id=site.company_id)


@pytest.fixture(scope='function')
def other_site(session, company):
    """Second site of the same company (another tenant)."""
    site = Site(company_id=company.id, name='Sede Norte')
    session.add(site)
    session.commit()
    return site


@pytest.fixture(scope='function')
def other_ctx(session, other_site):
    user = AppUser(
        email=f'cajero-{str(uuid.uuid4())[:8]}@test.com',
        full_name='Cajero Norte',
        active=True,
        site_id=other_site.id,
        company_id=other_site.company_id
    )
    session.add(user)
    session.commit()
    return TenantContext(user_id=user.id, username=user.full_name, site_id=other_site.id,
                         company_id=other_site.company_id)


@pytest.fixture(scope='function')
def make_product(session, site):
    """Factory: product with stock in the default site."""
    def _make(name='Paracetamol 500mg', stock=10, unit_price='5.00', site_id=None, company_id=None, **kwargs):
        kwargs.setdefault('active', True)
        product = Product(
            site_id=site_id or site.id,
            company_id=company_id or site.company_id,
            name=name,
            unit_price=Decimal(unit_price) if unit_price is not None else None,
            **kwargs
        )
        session.add(product)
        session.flush()
        session.add(ProductStock(product_id=product.id, on_hand_qty=stock))
        session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Stock 10, unit 5.00, box of 12 at 55.00, blister of 10 at 45.00."""
    return make_product(
        box_units=12,
        box_price=Decimal('55.00'),
        blister_units=10,
        blister_price=Decimal('45.00'),
        min_stock_qty=2
    )


@pytest.fixture(scope='function')
def customer(session, site):
    customer = Customer(
        site_id=site.id,
        company_id=site.company_id,
        name='María Quispe',
        document_number='45678912',
        points=100,
        active=True
    )
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture(scope='function')
def promotion(session, site):
    promotion = Promotion(
        site_id=site.id,
        company_id=site.company_id,
        name='Doble puntos',
        multiplier=Decimal('2'),
        start_date=date.today() - timedelta(days=1),
        end_date=date.today() + timedelta(days=30),
        active=True
    )
    session.add(promotion)
    session.commit()
    return promotion


@pytest.fixture(scope='function')
def redeemable(session, site, promotion):
    item = RedeemableProduct(
        site_id=site.id,
        company_id=site.company_id,
        promotion_id=promotion.id,
        name='Termo de regalo',
        points_required=30,
        stock=2,
        status=RedeemableStatus.AVAILABLE
    )
    session.add(item)
    session.commit()
    return item


@pytest.fixture(scope='function')
def authenticated_client(client, user, site):
    """Test client logged in as `user` in `site`."""
    with client.session_transaction() as sess:
        sess['user_id'] = user.id
        sess['site_id'] = site.id
        sess['company_id'] = site.company_id
    return client
