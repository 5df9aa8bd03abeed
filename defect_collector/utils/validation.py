"""
Validation of SQL identifiers taken from configuration.

Destination table names are interpolated into statements (quoted through
``psycopg.sql.Identifier``), so each configured name is checked once, when
the configuration is loaded.
"""

import re

# PostgreSQL truncates longer names (NAMEDATALEN - 1)
MAX_IDENTIFIER_LENGTH = 63

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ValidationError(ValueError):
    """Raised when a configured identifier is unsafe."""
    pass


def sanitize_sql_identifier(identifier: str, field_name: str = "identifier") -> str:
    """
    Check one SQL identifier (a table or schema name).

    Only letters, digits and underscores are accepted, starting with a letter
    or underscore; surrounding whitespace is dropped.

    Args:
        identifier: Name to check
        field_name: Setting the name came from, used in error messages

    Returns:
        The stripped identifier

    Raises:
        ValidationError: If the identifier is empty, too long or has other characters

    Examples:
        >>> sanitize_sql_identifier(" defect_line_a ")
        'defect_line_a'
    """
    if not isinstance(identifier, str) or not identifier.strip():
        raise ValidationError(f"{field_name} must be a non-empty string")

    name = identifier.strip()

    if _IDENTIFIER.match(name) is None:
        raise ValidationError(
            f"{field_name} {name!r} is not a plain SQL identifier: use letters, "
            "digits and underscores, starting with a letter or underscore"
        )

    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(
            f"{field_name} is longer than the PostgreSQL limit of {MAX_IDENTIFIER_LENGTH} characters"
        )

    return name


def sanitize_table_name(table_name: str, field_name: str = "table_name") -> str:
    """
    Validate a table name, optionally qualified with a schema (``schema.table``).

    Examples:
        >>> sanitize_table_name("production.defect_line_a")
        'production.defect_line_a'
    """
    if not isinstance(table_name, str) or not table_name.strip():
        raise ValidationError(f"{field_name} must be a non-empty string")

    parts = table_name.strip().split(".")
    if len(parts) > 2:
        raise ValidationError(f"{field_name} may have at most one schema qualifier")

    return ".".join(sanitize_sql_identifier(part, field_name) for part in parts)


def split_table_name(table_name: str) -> tuple[str, ...]:
    """Split a validated table name into the parts expected by ``sql.Identifier``."""
    return tuple(sanitize_table_name(table_name).split("."))
