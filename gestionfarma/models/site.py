"""Site model - a physical branch (sede) of a company."""
from sqlalchemy import Column, BigInteger, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class Site(Base):
    """Site (sede). Together with its company it forms the tenant pair."""
    
    __tablename__ = 'site'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    address = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    company = relationship('Company', back_populates='sites')
    
    def __repr__(self):
        return f"<Site(id={self.id}, company_id={self.company_id}, name='{self.name}')>"
