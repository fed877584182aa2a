"""API Routes for MedAccess."""

from medaccess.api import access, audit, health, patients, records

__all__ = [
    "access",
    "audit",
    "health",
    "patients",
    "records",
]
