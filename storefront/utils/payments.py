# storefront/utils/payments.py
import re
import uuid

from storefront.domain.enums import PaymentStatus
from storefront.domain.errors import ValidationError
from storefront.utils.settings import MTN_MOMO_COUNTRY_CODE

# slownik statusow MoMo -> status wewnetrzny
_PROVIDER_STATUS_MAP = {
    "SUCCESSFUL": PaymentStatus.PAID,
    "SUCCESS": PaymentStatus.PAID,
    "COMPLETED": PaymentStatus.PAID,
    "FAILED": PaymentStatus.FAILED,
    "REJECTED": PaymentStatus.FAILED,
    "CANCELLED": PaymentStatus.CANCELLED,
    "PENDING": PaymentStatus.PENDING,
    "INITIATED": PaymentStatus.INITIATED,
}


def map_provider_status(raw_status: str | None) -> PaymentStatus:
    """Unknown or empty provider statuses map to PENDING."""
    if not raw_status:
        return PaymentStatus.PENDING
    return _PROVIDER_STATUS_MAP.get(raw_status.strip().upper(), PaymentStatus.PENDING)


def normalize_msisdn(phone: str, country_code: str = MTN_MOMO_COUNTRY_CODE) -> str:
    """
    Normalizuje numer do formy miedzynarodowej +<kod kraju><numer>.
    Numery lokalne (0788..., 788...) sa traktowane jako krajowe.
    """
    cleaned = re.sub(r"[^\d+]", "", phone or "")
    digits = cleaned.lstrip("+")
    if not digits:
        raise ValidationError("MoMo phone number is required", code="MISSING_PHONE")

    if digits.startswith(country_code) or cleaned.startswith("+"):
        return f"+{digits}"
    if digits.startswith("0"):
        digits = digits[1:]
    return f"+{country_code}{digits}"


def generate_reference() -> str:
    return str(uuid.uuid4())


def describe_error(error: Exception) -> str:
    """Provider response body when there is one, otherwise the exception text."""
    response = getattr(error, "response", None)
    if response is not None:
        body = response.text
        if body:
            return body
        return response.reason or f"HTTP {response.status_code}"
    return str(error) or error.__class__.__name__
