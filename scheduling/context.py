"""
Explicit tenant context passed into every engine call.

The HTTP layer builds it from the caller's token (staff path) or from a
calendar's public slug (public path). Engine functions never look up the
"current" tenant on their own.
"""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class TenantContext:
    """
    Who is calling, and for which tenant.

    Attributes:
        tenant_id: Tenant every calendar/booking query is scoped to
        user_id: Authenticated staff user (None on the public path)
        is_public: True for unauthenticated public booking flows
    """

    tenant_id: UUID
    user_id: UUID | None = None
    is_public: bool = False

    @classmethod
    def for_user(cls, tenant_id: UUID, user_id: UUID) -> "TenantContext":
        return cls(tenant_id=tenant_id, user_id=user_id, is_public=False)

    @classmethod
    def public(cls, tenant_id: UUID) -> "TenantContext":
        return cls(tenant_id=tenant_id, user_id=None, is_public=True)
