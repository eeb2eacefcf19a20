"""Per-request tenant context passed explicitly to every service call."""
from dataclasses import dataclass
from typing import Optional

from gestionfarma.exceptions import ValidationError


@dataclass(frozen=True)
class TenantContext:
    """
    Current user plus the (site, company) pair that scopes all data access.

    Built by the middleware from the Flask session; services never read
    request globals.
    """
    user_id: Optional[int]
    username: str
    site_id: Optional[int]
    company_id: Optional[int]

    @property
    def has_tenant(self) -> bool:
        return self.site_id is not None and self.company_id is not None

    @property
    def tenant_key(self) -> str:
        """Cache namespace for this tenant."""
        return f"{self.company_id}-{self.site_id}"

    def require(self) -> 'TenantContext':
        """Raise ValidationError unless user, site and company are set."""
        if not self.has_tenant:
            raise ValidationError('No se puede operar: falta información de la sede/empresa.')
        if self.user_id is None:
            raise ValidationError('No se puede operar: usuario no identificado.')
        return self

    def scope(self, model):
        """SQLAlchemy filter clauses restricting `model` to this tenant."""
        return (model.site_id == self.site_id, model.company_id == self.company_id)
