"""
nORM - Request Utilities
Safe parsing helpers for request parameters
"""
import json
from datetime import datetime, timezone
from urllib.parse import urlparse


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def safe_int(value, default=0, min_val=None, max_val=None):
    """
    Safely parse an integer from a request parameter.

    Args:
        value: The value to parse (string or None)
        default: Default value if parsing fails
        min_val: Minimum allowed value (optional)
        max_val: Maximum allowed value (optional)

    Returns:
        int: Parsed integer or default
    """
    try:
        result = int(value) if value is not None else default
    except (ValueError, TypeError):
        result = default

    if min_val is not None:
        result = max(result, min_val)
    if max_val is not None:
        result = min(result, max_val)

    return result


def safe_bool(value, default=False):
    """
    Safely parse a boolean from a request parameter.
    Accepts: true, false, 1, 0, yes, no (case insensitive)
    """
    if value is None:
        return default

    if isinstance(value, bool):
        return value

    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes', 'on')

    return bool(value)


def safe_json_loads(value, default=None):
    """Safely parse JSON, returning default if None or invalid"""
    if default is None:
        default = []
    if not value:
        return default
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return default


def get_pagination_params(request, default_limit=50, max_limit=200):
    """
    Get pagination parameters from request.

    Returns:
        tuple: (limit, offset)
    """
    limit = safe_int(request.args.get('limit'), default_limit, min_val=1, max_val=max_limit)
    offset = safe_int(request.args.get('offset'), 0, min_val=0)
    return limit, offset


def get_date_range_params(request, default_days=30, max_days=365):
    """Number of days for a ?days= range"""
    return safe_int(request.args.get('days'), default_days, min_val=1, max_val=max_days)


def extract_domain(url):
    """Hostname without a leading www., or None for anything unparsable"""
    if not url:
        return None
    if not url.startswith(('http://', 'https://')):
        url = f"https://{url}"
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    hostname = hostname.lower()
    if hostname.startswith('www.'):
        hostname = hostname[4:]
    return hostname


def domain_matches(url, domain):
    """True when url lives on domain or one of its subdomains"""
    if not domain:
        return False
    url_domain = extract_domain(url)
    if not url_domain:
        return False
    return url_domain == domain or url_domain.endswith(f".{domain}")
