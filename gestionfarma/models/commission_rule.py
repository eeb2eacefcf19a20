"""Commission Rule model."""
import enum
from datetime import date
from sqlalchemy import Column, BigInteger, Numeric, Date, DateTime, Boolean, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class CommissionType(enum.Enum):
    """How a rule's value is applied to a sold line."""
    PERCENTAGE = "porcentaje"      # % of line subtotal
    FIXED_AMOUNT = "monto_fijo"    # value x base units sold


class CommissionRule(Base):
    """Commission Rule - per-product incentive with a validity window."""
    
    __tablename__ = 'commission_rule'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    site_id = Column(BigInteger, ForeignKey('site.id'), nullable=False, index=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False, index=True)
    type = Column(Enum(CommissionType, name='commission_type'), nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)  # open-ended when NULL
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    product = relationship('Product')
    
    def is_active_on(self, day: date) -> bool:
        """True if the rule is enabled and `day` falls inside its window."""
        if not self.active:
            return False
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        return True

    def __repr__(self):
        return f"<CommissionRule(id={self.id}, product_id={self.product_id}, type={self.type.value}, value={self.value})>"
