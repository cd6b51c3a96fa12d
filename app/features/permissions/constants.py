"""
Role, action and privacy-facet definitions.

These are fixed tables: the role set is closed, the action set is the five
capability columns of a permission rule, and the facet / acting-role / cascade
tables are static configuration that only changes with a deploy.
"""
import enum
from dataclasses import dataclass


class Role(str, enum.Enum):
    """Actor privilege levels, lowest first."""
    GUEST = "guest"
    USER = "user"
    GRID_MANAGER = "grid_manager"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @property
    def rank(self) -> int:
        return _ROLE_ORDER.index(self)

    def outranks(self, other: "Role") -> bool:
        return self.rank > other.rank

    @classmethod
    def parse(cls, value: str | None) -> "Role | None":
        """Return the Role for ``value`` or None when it is not a known role name."""
        if value is None:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


_ROLE_ORDER = [Role.GUEST, Role.USER, Role.GRID_MANAGER, Role.ADMIN, Role.SUPER_ADMIN]


class Action(str, enum.Enum):
    """The five capability columns of a permission rule."""
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    MANAGE = "manage"

    @property
    def column(self) -> str:
        return f"can_{self.value}"


# Owner-scoped grant consulted when the actor owns the target resource
MY_RESOURCES = "my_resources"


# ============================================================================
# Acting role ("view as")
# ============================================================================

# Roles each actual role may act as for a single request. Only a downgrade to
# USER is supported; anything else in the signal is ignored.
ACTING_ROLE_ALLOW_LIST: dict[Role, frozenset[Role]] = {
    Role.GUEST: frozenset(),
    Role.USER: frozenset({Role.USER}),
    Role.GRID_MANAGER: frozenset({Role.USER}),
    Role.ADMIN: frozenset({Role.USER}),
    Role.SUPER_ADMIN: frozenset({Role.USER}),
}


# ============================================================================
# Privacy facets
# ============================================================================

class Facet(str, enum.Enum):
    VOLUNTEER_CONTACT = "view_volunteer_contact"
    DONOR_CONTACT = "view_donor_contact"
    GRID_CONTACT = "view_grid_contact"


@dataclass(frozen=True)
class FacetSpec:
    """
    How one facet applies to a record shape.

    contact_fields are redacted; subject_fields hold the ids of the person the
    contact details describe; parent_field names the key of the owning grid
    (None when the record is the grid itself).
    """
    facet: Facet
    resource_kind: str
    contact_fields: tuple[str, ...]
    subject_fields: tuple[str, ...] = ()
    parent_field: str | None = None


FACETS: dict[Facet, FacetSpec] = {
    Facet.VOLUNTEER_CONTACT: FacetSpec(
        facet=Facet.VOLUNTEER_CONTACT,
        resource_kind="volunteer_registrations",
        contact_fields=("volunteer_phone", "volunteer_email"),
        subject_fields=("user_id", "created_by_id"),
        parent_field="grid_id",
    ),
    Facet.DONOR_CONTACT: FacetSpec(
        facet=Facet.DONOR_CONTACT,
        resource_kind="supply_donations",
        contact_fields=("donor_phone", "donor_email", "donor_contact"),
        subject_fields=("created_by_id",),
        parent_field="grid_id",
    ),
    Facet.GRID_CONTACT: FacetSpec(
        facet=Facet.GRID_CONTACT,
        resource_kind="grids",
        contact_fields=("contact_info",),
    ),
}

# (resource_kind, facet) pairs whose contact fields are disclosed to every
# viewer. Grid creators are the demand side and must stay reachable.
PUBLIC_FACETS: frozenset[tuple[str, Facet]] = frozenset({
    ("grids", Facet.GRID_CONTACT),
})

# Roles whose facet grant covers every record, not only records under grids
# they own or manage.
UNSCOPED_FACET_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


# ============================================================================
# Cascading deletes
# ============================================================================

# Parent kind -> {dependent kind: trash permission that must grant delete}
CASCADE_PERMISSIONS: dict[str, dict[str, str]] = {
    "grids": {
        "volunteer_registrations": "trash_volunteers",
        "supply_donations": "trash_supplies",
        "grid_discussions": "trash_discussions",
    },
}
