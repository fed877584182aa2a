"""MedAccess: consent, grant and audit engine for patient medical records."""
