"""Models package - exports all SQLAlchemy models."""
# Tenancy
from gestionfarma.models.company import Company
from gestionfarma.models.site import Site
from gestionfarma.models.app_user import AppUser

# Inventory
from gestionfarma.models.product import Product, SaleUnit
from gestionfarma.models.product_stock import ProductStock

# Sales
from gestionfarma.models.customer import Customer
from gestionfarma.models.sale import Sale, SaleStatus, PaymentMethod, normalize_payment_method
from gestionfarma.models.sale_line import SaleLine, SaleLineType
from gestionfarma.models.register_session import RegisterSession, RegisterStatus

# Commissions
from gestionfarma.models.commission_rule import CommissionRule, CommissionType
from gestionfarma.models.commission_record import CommissionRecord

# Loyalty
from gestionfarma.models.promotion import Promotion
from gestionfarma.models.redeemable_product import RedeemableProduct, RedeemableStatus
from gestionfarma.models.redemption_history import RedemptionHistory

# Alerts
from gestionfarma.models.notification import Notification, NotificationType, NotificationStatus

__all__ = [
    'Company', 'Site', 'AppUser',
    'Product', 'SaleUnit', 'ProductStock',
    'Customer', 'Sale', 'SaleStatus', 'PaymentMethod', 'normalize_payment_method',
    'SaleLine', 'SaleLineType', 'RegisterSession', 'RegisterStatus',
    'CommissionRule', 'CommissionType', 'CommissionRecord',
    'Promotion', 'RedeemableProduct', 'RedeemableStatus', 'RedemptionHistory',
    'Notification', 'NotificationType', 'NotificationStatus',
]
