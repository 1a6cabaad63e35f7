"""
Identity validators for the chat booking flow.

Validators:
- validate_patient_name: Non-empty full name
- validate_rut: Chilean RUT with valid check digit
- validate_phone: Contact phone normalized to E.164
"""

from agent.validators.identity_validators import (
    ValidationResult,
    validate_patient_name,
    validate_phone,
    validate_rut,
)

__all__ = [
    "ValidationResult",
    "validate_patient_name",
    "validate_phone",
    "validate_rut",
]
