from ipaddress import ip_address


def is_valid_ip(value: str) -> bool:
    """Return True if ``value`` is an IPv4 or IPv6 literal (no surrounding whitespace, no zone index)."""
    if not value or value != value.strip() or "%" in value:
        return False
    try:
        ip_address(value)
    except ValueError:
        return False
    return True
