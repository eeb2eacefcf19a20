"""Company model - the legal business that owns one or more sites."""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class Company(Base):
    """Company (empresa)."""
    
    __tablename__ = 'company'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    tax_id = Column(String(20), nullable=True)  # RUC
    address = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    sites = relationship('Site', back_populates='company')
    
    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}')>"
