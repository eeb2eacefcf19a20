"""Notification model - in-app alerts per tenant."""
import enum
from sqlalchemy import Column, BigInteger, Text, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from gestionfarma.database import Base, BigIntPK


class NotificationType(enum.Enum):
    LOW_STOCK = "stock_bajo"
    LARGE_SALE = "venta_grande"
    EXPIRING_PRODUCT = "vencimiento_proximo"
    EXPIRED_PRODUCT = "producto_vencido"
    NEW_CLIENT = "nuevo_cliente"


class NotificationStatus(enum.Enum):
    UNREAD = "no leido"
    READ = "leido"


class Notification(Base):
    """
    Notification.
    
    `reference_id` points at the product, sale or client that triggered
    it; at most one UNREAD row exists per (type, reference_id) per tenant.
    """
    
    __tablename__ = 'notification'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    site_id = Column(BigInteger, ForeignKey('site.id'), nullable=False, index=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    type = Column(Enum(NotificationType, name='notification_type'), nullable=False)
    status = Column(Enum(NotificationStatus, name='notification_status'), nullable=False,
                    default=NotificationStatus.UNREAD)
    message = Column(Text, nullable=False)
    reference_id = Column(BigInteger, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    def __repr__(self):
        return f"<Notification(id={self.id}, type={self.type.value}, status={self.status.value})>"
