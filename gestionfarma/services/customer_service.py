"""Customer service - client registration and lookup (tenant-scoped)."""
import logging
from typing import List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from gestionfarma.context import TenantContext
from gestionfarma.database import transaction
from gestionfarma.exceptions import BusinessLogicError, NotFoundError, ValidationError
from gestionfarma.models import Customer
from gestionfarma.services.notification_service import notify_new_client
from gestionfarma.utils.number_format import parse_date

logger = logging.getLogger(__name__)


def create_customer(session: Session, ctx: TenantContext, data: dict) -> Customer:
    """
    Register a client and raise a NewClient notification.

    Args:
        data: name (required), document_number, phone, birth_date (YYYY-MM-DD)

    Raises:
        ValidationError: missing name
        BusinessLogicError: document number already registered in this site
    """
    ctx.require()
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('El nombre del cliente es obligatorio.')
    document_number = (data.get('document_number') or '').strip() or None
    phone = (data.get('phone') or '').strip() or None
    birth_date = parse_date(data.get('birth_date'), 'fecha de nacimiento')

    with transaction(session):
        if document_number:
            duplicate = session.query(Customer.id).filter(
                *ctx.scope(Customer),
                Customer.document_number == document_number
            ).first()
            if duplicate:
                raise BusinessLogicError(f'Ya existe un cliente con el documento {document_number}.')

        customer = Customer(
            site_id=ctx.site_id,
            company_id=ctx.company_id,
            name=name,
            document_number=document_number,
            phone=phone,
            birth_date=birth_date,
            points=0,
            active=True,
        )
        session.add(customer)
        session.flush()

    logger.info(f"Client #{customer.id} created in {ctx.tenant_key}")
    notify_new_client(session, ctx, customer)
    return customer


def get_customer(session: Session, ctx: TenantContext, customer_id: int) -> Customer:
    customer = session.query(Customer).filter(
        Customer.id == customer_id, *ctx.scope(Customer)
    ).first()
    if not customer:
        raise NotFoundError('Cliente no encontrado.')
    return customer


def search_customers(session: Session, ctx: TenantContext, term: str = '', limit: int = 20) -> List[Customer]:
    """Active clients whose name or document number contains `term`."""
    query = session.query(Customer).filter(
        *ctx.scope(Customer),
        Customer.active == True
    )
    term = (term or '').strip()[:100]
    if term:
        pattern = f'%{term}%'
        query = query.filter(or_(
            Customer.name.ilike(pattern),
            Customer.document_number.ilike(pattern)
        ))
    return query.order_by(Customer.name).limit(limit).all()


def serialize_customer(customer: Customer) -> dict:
    return {
        'id': customer.id,
        'name': customer.name,
        'document_number': customer.document_number,
        'phone': customer.phone,
        'birth_date': customer.birth_date.isoformat() if customer.birth_date else None,
        'points': customer.points,
    }
