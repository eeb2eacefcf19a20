"""AppUser model - cashiers and administrators."""
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class AppUser(Base):
    """
    AppUser model.
    
    Authentication happens upstream; this row only carries identity and
    the default site/company the user works in.
    """
    
    __tablename__ = 'app_user'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(200), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    site_id = Column(BigInteger, ForeignKey('site.id'), nullable=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    site = relationship('Site')
    company = relationship('Company')
    
    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}')>"
