"""Redemption History model - audit of points spent."""
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class RedemptionHistory(Base):
    """One row per redeemed item, written at sale completion or on direct redemption."""
    
    __tablename__ = 'redemption_history'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    site_id = Column(BigInteger, ForeignKey('site.id'), nullable=False, index=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    client_id = Column(BigInteger, ForeignKey('customer.id'), nullable=False, index=True)
    redeemable_product_id = Column(BigInteger, ForeignKey('redeemable_product.id'), nullable=False)
    sale_id = Column(BigInteger, ForeignKey('sale.id'), nullable=True)  # NULL for direct redemptions
    product_name = Column(String(200), nullable=False)
    points_used = Column(Integer, nullable=False)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    client = relationship('Customer')
    redeemable_product = relationship('RedeemableProduct')
    
    def __repr__(self):
        return f"<RedemptionHistory(id={self.id}, client_id={self.client_id}, points={self.points_used})>"
