"""
User roles enumeration.

Defines the role types for the ordering platform.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Tenant owner, full dashboard access
        STAFF: Dashboard operator (approves orders, plans routes, records payments)
        DRIVER: Executes routes and collects payments in the field
        CUSTOMER: Places orders; holds a ledger with each tenant
    """
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    DRIVER = "DRIVER"
    CUSTOMER = "CUSTOMER"


DASHBOARD_ROLES = [UserRole.ADMIN, UserRole.STAFF]
