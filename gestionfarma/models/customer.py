"""Customer model with loyalty points."""
from sqlalchemy import Column, BigInteger, Integer, String, Date, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class Customer(Base):
    """Customer (cliente)."""
    
    __tablename__ = 'customer'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    site_id = Column(BigInteger, ForeignKey('site.id'), nullable=False, index=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    document_number = Column(String(20), nullable=True)  # DNI
    phone = Column(String(50), nullable=True)
    birth_date = Column(Date, nullable=True)
    points = Column(Integer, nullable=False, default=0, server_default='0')
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    sales = relationship('Sale', back_populates='client')
    
    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}', points={self.points})>"
