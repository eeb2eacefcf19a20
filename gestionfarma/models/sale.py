"""Sale model - draft (pending) and completed sales share one header table."""
import enum
from sqlalchemy import Column, BigInteger, Integer, String, Text, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class SaleStatus(enum.Enum):
    """Sale status enum. PENDING is the only mutable state."""
    PENDING = "Pendiente"
    COMPLETED = "Completada"
    CANCELLED = "Cancelada"


class PaymentMethod(str, enum.Enum):
    """Payment methods accepted at the register."""
    CASH = 'CASH'
    MOBILE_WALLET = 'MOBILE_WALLET'  # Yape / Plin
    BANK_TRANSFER = 'BANK_TRANSFER'
    OTHER = 'OTHER'


_PAYMENT_ALIASES = {
    'EFECTIVO': PaymentMethod.CASH,
    'YAPE': PaymentMethod.MOBILE_WALLET,
    'PLIN': PaymentMethod.MOBILE_WALLET,
    'TRANSFERENCIA': PaymentMethod.BANK_TRANSFER,
    'TRANSFER': PaymentMethod.BANK_TRANSFER,
    'OTROS': PaymentMethod.OTHER,
}


def normalize_payment_method(value) -> PaymentMethod:
    """
    Normalize a payment method value.
    
    Args:
        value: None, PaymentMethod enum, or string (English or Spanish label)
    
    Returns:
        PaymentMethod
    
    Raises:
        ValueError: If value is not a known payment method
    """
    if value is None:
        return PaymentMethod.CASH
    
    if isinstance(value, PaymentMethod):
        return value
    
    normalized = str(value).upper().strip()
    if normalized in PaymentMethod.__members__:
        return PaymentMethod[normalized]
    if normalized in _PAYMENT_ALIASES:
        return _PAYMENT_ALIASES[normalized]
    
    raise ValueError(f'Método de pago inválido: {value}')


class Sale(Base):
    """Sale (venta). Created as PENDING on the first cart mutation."""
    
    __tablename__ = 'sale'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    site_id = Column(BigInteger, ForeignKey('site.id'), nullable=False, index=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    username = Column(String(255), nullable=False)
    status = Column(Enum(SaleStatus, name='sale_status'), nullable=False, default=SaleStatus.PENDING)
    
    client_id = Column(BigInteger, ForeignKey('customer.id'), nullable=True)
    client_name = Column(String(200), nullable=True)
    promotion_id = Column(BigInteger, ForeignKey('promotion.id'), nullable=True)
    payment_method = Column(String(20), nullable=True)
    document_type = Column(String(10), nullable=False, default='boleta')  # boleta | factura
    receipt_note = Column(Text, nullable=True)
    
    # Discount is a percentage XOR a fixed amount
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0, server_default='0')
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    
    subtotal = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    amount_due = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    amount_tendered = Column(Numeric(10, 2), nullable=True)
    change_amount = Column(Numeric(10, 2), nullable=True)
    points_earned = Column(Integer, nullable=False, default=0, server_default='0')
    points_redeemed = Column(Integer, nullable=False, default=0, server_default='0')
    
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    
    # Relationships
    user = relationship('AppUser')
    client = relationship('Customer', back_populates='sales')
    promotion = relationship('Promotion')
    lines = relationship('SaleLine', back_populates='sale', cascade='all, delete-orphan',
                         order_by='SaleLine.id')
    
    @property
    def is_pending(self) -> bool:
        return self.status == SaleStatus.PENDING

    def __repr__(self):
        return f"<Sale(id={self.id}, amount_due={self.amount_due}, status={self.status.value})>"
