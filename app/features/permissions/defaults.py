"""
Default permission matrix.

DEFAULT_PERMISSIONS is what scripts/seed_permissions.py writes at deploy time.
FALLBACK_MATRIX is derived from it and restricted to FALLBACK_KINDS; it is
what the resolver answers with when the store is unreachable or has no row,
so it can never grant more than the seed does.
"""
from app.features.permissions.constants import Action, Role


# permission_key -> (display name, category, description)
PERMISSION_KEYS: dict[str, tuple[str, str, str]] = {
    "disaster_areas": ("Disaster areas", "core", "Disaster area records"),
    "grids": ("Relief grids", "core", "Relief grid records"),
    "volunteers": ("Volunteers", "people", "Aggregated volunteer listing"),
    "volunteer_registrations": ("Volunteer registrations", "people", "Volunteer sign-ups on a grid"),
    "supplies": ("Supplies", "resources", "Supply requests on a grid"),
    "supply_donations": ("Supply donations", "resources", "Donations pledged to a grid"),
    "grid_discussions": ("Grid discussions", "resources", "Discussion threads attached to a grid"),
    "announcements": ("Announcements", "information", "Public announcements"),
    "users": ("Users", "system", "User accounts and roles"),
    "role_permissions": ("Permission settings", "system", "This permission matrix"),
    "audit_logs": ("Audit logs", "system", "Audit log viewer"),
    "admin_panel": ("Admin panel", "system", "Admin console access"),
    "trash_grids": ("Grid trash", "trash", "view=list, edit=restore, delete=purge"),
    "trash_areas": ("Area trash", "trash", "view=list, edit=restore, delete=purge"),
    "trash_supplies": ("Supply trash", "trash", "Purge supply donations, also when cascading"),
    "trash_volunteers": ("Registration trash", "trash", "Purge volunteer registrations, also when cascading"),
    "trash_discussions": ("Discussion trash", "trash", "Purge discussion threads, also when cascading"),
    "profile": ("Profile", "personal", "The caller's own profile"),
    "my_resources": ("My resources", "personal", "Resources the caller created or manages"),
    "view_volunteer_contact": ("Volunteer contact", "privacy", "Volunteer phone and email"),
    "view_donor_contact": ("Donor contact", "privacy", "Donor phone, email and contact"),
    "view_grid_contact": ("Grid contact", "privacy", "Grid contact person"),
}


_CORE_KINDS = (
    "disaster_areas", "grids", "volunteers", "volunteer_registrations",
    "supplies", "supply_donations", "grid_discussions", "announcements",
)
_TRASH_KINDS = ("trash_grids", "trash_areas", "trash_supplies", "trash_volunteers", "trash_discussions")
_FACET_KINDS = ("view_volunteer_contact", "view_donor_contact", "view_grid_contact")


# role -> {permission_key: granted actions as letters of "vcedm"}
_GRANTS: dict[Role, dict[str, str]] = {
    Role.GUEST: {
        "disaster_areas": "v",
        "grids": "v",
        "volunteers": "v",
        "volunteer_registrations": "",
        "supplies": "v",
        "supply_donations": "v",
        "grid_discussions": "v",
        "announcements": "v",
        "view_volunteer_contact": "",
        "view_donor_contact": "",
        "view_grid_contact": "v",
    },
    Role.USER: {
        "disaster_areas": "v",
        "grids": "vc",
        "volunteers": "v",
        "volunteer_registrations": "vc",
        "supplies": "vc",
        "supply_donations": "vc",
        "grid_discussions": "vc",
        "announcements": "v",
        "users": "",
        "role_permissions": "",
        "audit_logs": "",
        "admin_panel": "",
        **{kind: "" for kind in _TRASH_KINDS},
        "profile": "ve",
        "my_resources": "ved",
        **{kind: "v" for kind in _FACET_KINDS},
    },
    Role.GRID_MANAGER: {
        "disaster_areas": "ve",
        "grids": "vc",
        "volunteers": "vce",
        "volunteer_registrations": "vc",
        "supplies": "vce",
        "supply_donations": "vc",
        "grid_discussions": "vc",
        "announcements": "vced",
        "users": "v",
        "role_permissions": "",
        "audit_logs": "",
        "admin_panel": "v",
        **{kind: "ve" for kind in _TRASH_KINDS},
        "profile": "ve",
        "my_resources": "ved",
        **{kind: "v" for kind in _FACET_KINDS},
    },
    Role.ADMIN: {
        **{kind: "vcedm" for kind in _CORE_KINDS},
        "users": "vcem",
        "role_permissions": "ve",
        "audit_logs": "v",
        "admin_panel": "vcedm",
        **{kind: "ved" for kind in _TRASH_KINDS},
        "profile": "ve",
        "my_resources": "vedm",
        **{kind: "v" for kind in _FACET_KINDS},
    },
    Role.SUPER_ADMIN: {
        **{kind: "vcedm" for kind in _CORE_KINDS},
        "users": "vcedm",
        "role_permissions": "vcedm",
        "audit_logs": "vm",
        "admin_panel": "vcedm",
        **{kind: "ved" for kind in _TRASH_KINDS},
        "profile": "ve",
        "my_resources": "vedm",
        **{kind: "v" for kind in _FACET_KINDS},
    },
}

_LETTERS = {"v": Action.VIEW, "c": Action.CREATE, "e": Action.EDIT, "d": Action.DELETE, "m": Action.MANAGE}


def _row(role: Role, key: str, letters: str) -> dict:
    name, category, description = PERMISSION_KEYS[key]
    granted = {_LETTERS[letter] for letter in letters}
    return {
        "role": role,
        "permission_key": key,
        "permission_name": name,
        "permission_category": category,
        "description": description,
        **{action.column: action in granted for action in Action},
    }


DEFAULT_PERMISSIONS: list[dict] = [
    _row(role, key, letters)
    for role, grants in _GRANTS.items()
    for key, letters in grants.items()
]


# Resource kinds the service ships with; only these are answered without a row
FALLBACK_KINDS = frozenset({
    "disaster_areas", "grids", "volunteers", "volunteer_registrations",
    "supplies", "supply_donations", "announcements",
})

FALLBACK_MATRIX: dict[tuple[Role, str], frozenset[Action]] = {
    (row["role"], row["permission_key"]): frozenset(a for a in Action if row[a.column])
    for row in DEFAULT_PERMISSIONS
    if row["permission_key"] in FALLBACK_KINDS
}


def fallback_allows(role: Role, resource_kind: str, action: Action) -> bool | None:
    """True/False from the fallback matrix, or None when it has no entry."""
    granted = FALLBACK_MATRIX.get((role, resource_kind))
    if granted is None:
        return None
    return action in granted
