"""Commission Record model."""
from sqlalchemy import Column, BigInteger, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class CommissionRecord(Base):
    """Commission earned by the selling user for one (sale line, rule) pair."""
    
    __tablename__ = 'commission_record'
    __table_args__ = (
        UniqueConstraint('sale_line_id', 'rule_id', name='uq_commission_record_line_rule'),
    )
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    site_id = Column(BigInteger, ForeignKey('site.id'), nullable=False, index=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    sale_id = Column(BigInteger, ForeignKey('sale.id'), nullable=False, index=True)
    sale_line_id = Column(BigInteger, ForeignKey('sale_line.id'), nullable=False)
    rule_id = Column(BigInteger, ForeignKey('commission_rule.id'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    rule = relationship('CommissionRule')
    product = relationship('Product')
    user = relationship('AppUser')
    
    def __repr__(self):
        return f"<CommissionRecord(id={self.id}, sale_line_id={self.sale_line_id}, amount={self.amount})>"
