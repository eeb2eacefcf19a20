"""Promotion model - loyalty points multipliers."""
from datetime import date
from sqlalchemy import Column, BigInteger, String, Numeric, Date, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class Promotion(Base):
    """Promotion (campaña de puntos)."""
    
    __tablename__ = 'promotion'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    site_id = Column(BigInteger, ForeignKey('site.id'), nullable=False, index=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    multiplier = Column(Numeric(5, 2), nullable=False, default=1)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    redeemables = relationship('RedeemableProduct', back_populates='promotion')
    
    def is_active_on(self, day: date) -> bool:
        if not self.active:
            return False
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        return True

    def __repr__(self):
        return f"<Promotion(id={self.id}, name='{self.name}', multiplier={self.multiplier})>"
