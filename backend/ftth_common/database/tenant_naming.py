"""
Tenant identity and database naming.

Every tenant owns a database whose name is a pure function of its domain, and
every linked external account owns a database whose name is a pure function of
its upstream username. Nothing here touches a database.

Naming:
    admin@Acme-2        -> domain "acme-2"  -> database "tenant_acme_2"
    bot.n8nf (external) ->                    database "alwatani_bot_n8nf"

Cleaning rule (shared by both derivations):
    1. lower-case
    2. every run of characters outside [a-z0-9] becomes one "_"
    3. leading/trailing "_" stripped

The result is always prefixed, so it never starts with a digit, and it never
exceeds PostgreSQL's 63 byte identifier limit.
"""

import re

from ftth_common.exceptions import InvalidDatabaseName

ADMIN_USERNAME_PATTERN = re.compile(r"^admin@(.+)$")
DATABASE_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")
MAX_DATABASE_NAME_LENGTH = 63

DEFAULT_TENANT_PREFIX = "tenant_"
DEFAULT_EXTERNAL_PREFIX = "alwatani_"


def get_domain_from_username(username: str | None) -> str | None:
    """
    Extract the tenant domain from a domain-qualified username.

    ``admin@tec`` -> ``tec``. Returns None for anything not in the
    ``admin@<domain>`` form, including None and the empty string.
    """
    if not username:
        return None
    match = ADMIN_USERNAME_PATTERN.match(username.strip())
    return match.group(1).lower() if match else None


def clean_identifier(value: str) -> str:
    return NON_ALNUM_RUN.sub("_", value.lower()).strip("_")


def is_valid_database_name(name: str | None) -> bool:
    """Check that ``name`` is an unquoted-safe PostgreSQL database name."""
    if not name:
        return False
    return bool(DATABASE_NAME_PATTERN.match(name)) and len(name) <= MAX_DATABASE_NAME_LENGTH


def _derive(value: str | None, prefix: str, reason: str) -> str:
    if not value:
        raise InvalidDatabaseName(value, reason)
    cleaned = clean_identifier(value)
    if not cleaned:
        raise InvalidDatabaseName(value, reason)
    name = f"{prefix}{cleaned}"
    if not is_valid_database_name(name):
        raise InvalidDatabaseName(value, "Database name too long")
    return name


def derive_database_name(domain: str | None, prefix: str = DEFAULT_TENANT_PREFIX) -> str:
    """
    Derive the tenant database name for a domain.

    Args:
        domain: Tenant domain, e.g. "acme" or "Acme-2".
        prefix: Database name prefix. Defaults to "tenant_".

    Returns:
        The database name, e.g. "tenant_acme_2".

    Raises:
        InvalidDatabaseName: If the domain is empty, cleans down to nothing, or
            produces a name longer than 63 characters.
    """
    return _derive(domain, prefix, "Invalid domain name")


def derive_external_database_name(
    username: str | None, prefix: str = DEFAULT_EXTERNAL_PREFIX
) -> str:
    """Derive the per-account database name for an external-account username."""
    return _derive(username, prefix, "Invalid external account username")
