"""Product model with tiered sale units (unidad, blister, caja, paquete)."""
import enum
from decimal import Decimal
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, Numeric, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class SaleUnit(enum.Enum):
    """Sale-unit tier. Stock is always kept in UNIT."""
    UNIT = 'Unidad'
    BLISTER = 'Blister'
    BOX = 'Caja'
    PACKAGE = 'Paquete'

    @classmethod
    def parse(cls, value):
        """Accept an enum, its name or its display value."""
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.UNIT
        text = str(value).strip()
        for unit in cls:
            if text.upper() == unit.name or text.lower() == unit.value.lower():
                return unit
        raise ValueError(f'Unidad de venta inválida: {value}')


# (price column, units-per-tier column) for each packaged tier
_TIER_COLUMNS = {
    SaleUnit.BLISTER: ('blister_price', 'blister_units'),
    SaleUnit.BOX: ('box_price', 'box_units'),
    SaleUnit.PACKAGE: ('package_price', 'package_units'),
}

# Checked in this order when a typed quantity matches a tier size
TIER_PROMOTION_ORDER = (SaleUnit.PACKAGE, SaleUnit.BOX, SaleUnit.BLISTER)


class Product(Base):
    """Product model."""

    __tablename__ = 'product'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    site_id = Column(BigInteger, ForeignKey('site.id'), nullable=False, index=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    code = Column(String(50), nullable=True)
    name = Column(String(255), nullable=False)
    lot = Column(String(50), nullable=True)
    laboratory = Column(String(150), nullable=True)
    category = Column(String(100), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    cost = Column(Numeric(10, 2), nullable=False, default=0, server_default='0.00')
    unit_price = Column(Numeric(10, 2), nullable=True)
    blister_price = Column(Numeric(10, 2), nullable=True)
    blister_units = Column(Integer, nullable=True)
    box_price = Column(Numeric(10, 2), nullable=True)
    box_units = Column(Integer, nullable=True)
    package_price = Column(Numeric(10, 2), nullable=True)
    package_units = Column(Integer, nullable=True)

    min_stock_qty = Column(Integer, nullable=False, default=0, server_default='0')
    expiration_date = Column(Date, nullable=True)
    sold_count = Column(Integer, nullable=False, default=0, server_default='0')  # lifetime units sold
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    stock = relationship('ProductStock', uselist=False, back_populates='product', cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}')>"

    @property
    def on_hand_qty(self) -> int:
        """Get on hand quantity (in units) from stock."""
        if self.stock:
            return self.stock.on_hand_qty
        return 0

    def units_per(self, unit: SaleUnit) -> int:
        """How many base units one `unit` of this product contains."""
        if unit == SaleUnit.UNIT:
            return 1
        _, units_column = _TIER_COLUMNS[unit]
        return getattr(self, units_column) or 1

    def price_for(self, unit: SaleUnit) -> Decimal:
        """Sale price of one `unit`; tiers without a price sell at 0."""
        if unit == SaleUnit.UNIT:
            price = self.unit_price
        else:
            price_column, _ = _TIER_COLUMNS[unit]
            price = getattr(self, price_column)
        return Decimal(str(price)) if price is not None else Decimal('0.00')

    def available_units(self) -> list:
        """Tiers that have a price configured."""
        units = [SaleUnit.UNIT] if self.unit_price is not None else []
        for unit, (price_column, _) in _TIER_COLUMNS.items():
            if getattr(self, price_column) is not None:
                units.append(unit)
        return units

    def tier_for_quantity(self, quantity: int):
        """Return the priced tier whose size equals `quantity` (package > box > blister), if any."""
        for unit in TIER_PROMOTION_ORDER:
            price_column, units_column = _TIER_COLUMNS[unit]
            size = getattr(self, units_column)
            if size and size == quantity and getattr(self, price_column) is not None:
                return unit
        return None
