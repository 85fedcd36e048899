CUSTOMER = "CUSTOMER"
ADMIN = "ADMIN"
SUPER_ADMIN = "SUPER_ADMIN"

KNOWN_ROLES = {CUSTOMER, ADMIN, SUPER_ADMIN}
ADMIN_ROLES = {ADMIN, SUPER_ADMIN}


def normalize_role(value):
    """Map a header value to a known role name, or None."""
    name = (value or CUSTOMER).strip().upper()
    return name if name in KNOWN_ROLES else None
