"""
Identity Validators - patient data collected during the chat booking flow.

Each validator returns a ValidationResult; on success `value` holds the
normalized value to store:
- validate_patient_name: trimmed, collapsed whitespace, minimum length
- validate_rut: Chilean RUT with modulo-11 check digit, formatted 12.345.678-5
- validate_phone: normalized to E.164 (+569XXXXXXXX for bare 8-digit mobiles)
"""

import logging
import re
from typing import Any, Optional

import phonenumbers
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 3
PHONE_REGION = "CL"


class ValidationResult(BaseModel):
    """Result of an identity field validation."""
    valid: bool
    value: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


def validate_patient_name(raw: str) -> ValidationResult:
    name = " ".join((raw or "").split())
    if len(name) < MIN_NAME_LENGTH:
        return ValidationResult(
            valid=False,
            error_code="INVALID_NAME",
            error_message="Por favor ingrese su NOMBRE COMPLETO.",
        )
    return ValidationResult(valid=True, value=name)


def clean_rut(raw: str) -> str:
    return re.sub(r"[^0-9kK]", "", raw or "").upper()


def rut_check_digit(body: str) -> str:
    """
    Compute the modulo-11 check digit of a RUT body.

    Example:
        >>> rut_check_digit("12345678")
        '5'
    """
    total = 0
    multiplier = 2
    for digit in reversed(body):
        total += int(digit) * multiplier
        multiplier = multiplier + 1 if multiplier < 7 else 2
    remainder = 11 - (total % 11)
    if remainder == 11:
        return "0"
    if remainder == 10:
        return "K"
    return str(remainder)


def format_rut(cleaned: str) -> str:
    body, dv = cleaned[:-1], cleaned[-1]
    return f"{int(body):,}".replace(",", ".") + f"-{dv}"


def validate_rut(raw: str) -> ValidationResult:
    cleaned = clean_rut(raw)
    invalid = ValidationResult(
        valid=False,
        error_code="INVALID_RUT",
        error_message="RUT inválido. Ingréselo con guion y dígito verificador (ej: 12.345.678-5):",
    )
    if len(cleaned) < 2:
        return invalid

    body, dv = cleaned[:-1], cleaned[-1]
    if not body.isdigit():
        return invalid
    if rut_check_digit(body) != dv:
        return invalid

    return ValidationResult(valid=True, value=format_rut(cleaned))


def validate_phone(raw: str) -> ValidationResult:
    digits = re.sub(r"\D", "", raw or "")
    invalid = ValidationResult(
        valid=False,
        error_code="INVALID_PHONE",
        error_message="Teléfono inválido. Ingrese un celular de 8 dígitos (ej: 9 1234 5678):",
    )
    if not digits:
        return invalid

    candidate = raw.strip()
    if len(digits) == 8:
        # Bare mobile number without the 9 prefix
        candidate = f"+569{digits}"

    try:
        parsed = phonenumbers.parse(candidate, PHONE_REGION)
    except phonenumbers.NumberParseException as e:
        logger.debug(f"Cannot parse phone number {raw!r}: {e}")
        return invalid

    if not phonenumbers.is_valid_number(parsed):
        return invalid

    return ValidationResult(
        valid=True,
        value=phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164),
    )
