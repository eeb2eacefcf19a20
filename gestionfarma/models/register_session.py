"""Register Session (caja) model."""
import enum
from sqlalchemy import Column, BigInteger, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class RegisterStatus(enum.Enum):
    """Register session status. CLOSED is terminal."""
    OPEN = "Abierta"
    CLOSED = "Cerrada"


class RegisterSession(Base):
    """
    Register Session - one cash drawer accounting period for a user.
    
    System totals per payment method are stamped on close together with
    the counted cash and the resulting surplus/shortfall.
    """
    
    __tablename__ = 'register_session'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    site_id = Column(BigInteger, ForeignKey('site.id'), nullable=False, index=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    status = Column(Enum(RegisterStatus, name='register_status'), nullable=False, default=RegisterStatus.OPEN)
    
    opening_float = Column(Numeric(10, 2), nullable=False, default=0)
    opened_at = Column(DateTime(timezone=True), nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    
    # Filled on close
    cash_total = Column(Numeric(10, 2), nullable=True)
    mobile_wallet_total = Column(Numeric(10, 2), nullable=True)
    bank_transfer_total = Column(Numeric(10, 2), nullable=True)
    other_total = Column(Numeric(10, 2), nullable=True)
    system_total = Column(Numeric(10, 2), nullable=True)  # cash sales + opening float
    physical_cash = Column(Numeric(10, 2), nullable=True)
    surplus = Column(Numeric(10, 2), nullable=True)
    shortfall = Column(Numeric(10, 2), nullable=True)
    
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    user = relationship('AppUser')
    
    @property
    def is_open(self) -> bool:
        return self.status == RegisterStatus.OPEN

    def __repr__(self):
        return f"<RegisterSession(id={self.id}, user_id={self.user_id}, status={self.status.value})>"
