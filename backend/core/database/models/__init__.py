# ------------------------------ IMPORTS ------------------------------
from .tenant_session import TenantSessionRecord

__all__ = [
    "TenantSessionRecord",
]
