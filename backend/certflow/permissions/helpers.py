# Overview: Lookups over the permission catalogue for role storage, the CLI and the admin API.

from .categories import PermissionCategory
from .definitions import PERMISSION_DEFINITIONS


PERMISSION_CODES = frozenset(code for code, _name, _description, _category in PERMISSION_DEFINITIONS)


def get_all_permission_codes() -> list[str]:
    """Every permission code, in catalogue order."""
    return [code for code, _name, _description, _category in PERMISSION_DEFINITIONS]


def validate_permission_code(code) -> bool:
    return code in PERMISSION_CODES


def permission_categories() -> list[str]:
    return [
        value for key, value in vars(PermissionCategory).items()
        if not key.startswith("_")
    ]


def permission_catalogue() -> dict[str, list[dict]]:
    """
    {category: [{code, name, description, category}, ...]} for every
    category, including ones with no permissions yet.
    """
    grouped = {category: [] for category in permission_categories()}
    for code, name, description, category in PERMISSION_DEFINITIONS:
        grouped.setdefault(category, []).append({
            "code": code,
            "name": name,
            "description": description,
            "category": category,
        })
    return grouped
