# storefront/utils/parse.py
from datetime import datetime, timezone

# upper bound of a db.Integer column on every backend we run on
INT_MAX = 2**31 - 1


def parse_int(v, field: str, *, minimum=None, maximum=INT_MAX):
    """Strict int parsing for request bodies: 3 and "3" pass, 3.5, "x" and True do not."""
    if v is None or isinstance(v, bool):
        raise ValueError(f"{field} must be an integer")
    if isinstance(v, float):
        if not v.is_integer():
            raise ValueError(f"{field} must be an integer")
        v = int(v)
    try:
        n = int(v)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be an integer") from None
    if minimum is not None and n < minimum:
        raise ValueError(f"{field} must be >= {minimum}")
    if maximum is not None and n > maximum:
        raise ValueError(f"{field} must be <= {maximum}")
    return n


def parse_opt_int(v, field: str, *, minimum=None, maximum=INT_MAX):
    if v is None:
        return None
    if isinstance(v, str) and v.strip().lower() in {"", "null"}:
        return None
    return parse_int(v, field, minimum=minimum, maximum=maximum)


def parse_bool(v, default=False):
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def parse_iso8601(s, field: str):
    """Parse an ISO-8601 string into naive UTC; None/"" pass through as None."""
    if s is None or (isinstance(s, str) and not s.strip()):
        return None
    if not isinstance(s, str):
        raise ValueError(f"Invalid datetime format for {field}")
    s = s.strip()
    # support trailing 'Z' (UTC)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        raise ValueError(f"Invalid datetime format for {field}") from None
    if dt.tzinfo:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)  # store naive UTC
    return dt


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)
