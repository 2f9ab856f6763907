import re
import secrets
import string
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from errors import ValidationError

MONEY_QUANT = Decimal("0.01")
REFERRAL_CODE_LENGTH = 8


def validate_email(email):
    return re.match(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', email) is not None


def validate_phone(phone):
    return re.match(r'^\+?\d{9,15}$', phone) is not None


def to_money(value) -> Decimal:
    """Quantize any numeric value to two-decimal currency precision"""
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def parse_amount(value, field="amount", minimum=None) -> Decimal:
    """Parse a positive monetary amount, raising a field-level ValidationError"""
    if value is None or isinstance(value, bool):
        raise ValidationError({field: "This field is required"})
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError({field: "Must be a number"})

    if not amount.is_finite() or amount <= 0:
        raise ValidationError({field: "Must be greater than zero"})
    if amount != amount.quantize(MONEY_QUANT):
        raise ValidationError({field: "At most two decimal places are allowed"})
    if minimum is not None and amount < minimum:
        raise ValidationError({field: f"Minimum amount is {minimum}"})
    return amount


def require_json(request):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError({"body": "Invalid or missing JSON body"})
    return data


def require_fields(data, *fields):
    """Raise one ValidationError listing every missing or blank field"""
    missing = {}
    for field in fields:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing[field] = "This field is required"
    if missing:
        raise ValidationError(missing)


def generate_referral_code(exists, length=REFERRAL_CODE_LENGTH):
    """Generate a code for which `exists(code)` is False"""
    chars = string.ascii_uppercase + string.digits
    for _ in range(10):
        code = ''.join(secrets.choice(chars) for _ in range(length))
        if not exists(code):
            return code
    raise RuntimeError("Could not generate a unique referral code")


def page_args(args, default_limit=10, max_limit=100):
    try:
        page = max(int(args.get("page", 1)), 1)
        limit = min(max(int(args.get("limit", default_limit)), 1), max_limit)
    except (TypeError, ValueError):
        raise ValidationError({"page": "page and limit must be integers"})
    return page, limit
