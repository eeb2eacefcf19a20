"""Redeemable Product model - the points catalog."""
import enum
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class RedeemableStatus(enum.Enum):
    """Derived from stock: EXHAUSTED once stock reaches zero."""
    AVAILABLE = "Disponible"
    EXHAUSTED = "Agotado"


class RedeemableProduct(Base):
    """Redeemable Product (producto canjeable)."""
    
    __tablename__ = 'redeemable_product'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    site_id = Column(BigInteger, ForeignKey('site.id'), nullable=False, index=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    promotion_id = Column(BigInteger, ForeignKey('promotion.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    points_required = Column(Integer, nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    status = Column(Enum(RedeemableStatus, name='redeemable_status'), nullable=False,
                    default=RedeemableStatus.AVAILABLE)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    promotion = relationship('Promotion', back_populates='redeemables')
    
    def refresh_status(self):
        """Recompute status from the stock counter."""
        self.status = RedeemableStatus.AVAILABLE if (self.stock or 0) > 0 else RedeemableStatus.EXHAUSTED

    def __repr__(self):
        return f"<RedeemableProduct(id={self.id}, name='{self.name}', points={self.points_required})>"
