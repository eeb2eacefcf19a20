"""Sale Line model - one row per cart entry."""
import enum
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK
from gestionfarma.models.product import SaleUnit


class SaleLineType(enum.Enum):
    """Inventory sale vs. loyalty-points redemption."""
    NORMAL = "NORMAL"
    REDEEMED = "REDEEMED"


class SaleLine(Base):
    """
    Sale Line (detalle de venta).
    
    NORMAL lines reference a product and reserve
    `quantity * units_per_selection` base units of its stock.
    REDEEMED lines reference a redeemable product, cost points and
    carry a zero price.
    """
    
    __tablename__ = 'sale_line'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sale_id = Column(BigInteger, ForeignKey('sale.id', ondelete='CASCADE'), nullable=False, index=True)
    site_id = Column(BigInteger, ForeignKey('site.id'), nullable=False)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False)
    line_type = Column(Enum(SaleLineType, name='sale_line_type'), nullable=False, default=SaleLineType.NORMAL)
    
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=True, index=True)
    redeemable_product_id = Column(BigInteger, ForeignKey('redeemable_product.id'), nullable=True)
    product_name = Column(String(255), nullable=False)
    
    unit = Column(Enum(SaleUnit, name='sale_unit'), nullable=False, default=SaleUnit.UNIT)
    quantity = Column(Integer, nullable=False)
    units_per_selection = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False, default=0)
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    points_cost = Column(Integer, nullable=False, default=0)
    
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    sale = relationship('Sale', back_populates='lines')
    product = relationship('Product')
    redeemable_product = relationship('RedeemableProduct')
    
    @property
    def is_redeemed(self) -> bool:
        return self.line_type == SaleLineType.REDEEMED

    @property
    def reserved_units(self) -> int:
        """Base units of stock held by this line (0 for redemptions)."""
        if self.is_redeemed:
            return 0
        return self.quantity * self.units_per_selection

    def __repr__(self):
        return f"<SaleLine(id={self.id}, type={self.line_type.value}, qty={self.quantity})>"
