"""
Contact-field redaction for records leaving the service.

A contact field is disclosed when any of these holds:

- the viewer's effective role is super_admin;
- the facet is configured public for the record's kind (grid contacts);
- the viewer is the person the contact details describe;
- the viewer's role holds the facet grant AND either the role is unscoped
  (admin) or the viewer owns/manages the parent grid.

Otherwise each contact field is replaced with REDACTED. The filter reads only
what the caller already loaded (the records and a map of parent ownership),
returns new dicts and never mutates its input, so it is safe to run on any
list and to run twice.
"""
from typing import Any, Iterable, Mapping, overload

from app.features.permissions.acting_role import RequestContext
from app.features.permissions.authorizer import Ownership, ownership_of
from app.features.permissions.constants import (
    FACETS,
    PUBLIC_FACETS,
    UNSCOPED_FACET_ROLES,
    Facet,
    FacetSpec,
    Role,
)


# Distinct from None ("not provided") and "" (provided, empty)
REDACTED = "__redacted__"


def _subject_ids(record: Mapping[str, Any], rule: FacetSpec) -> set[str]:
    return {record.get(name) for name in rule.subject_fields} - {None, ""}


def _parent_ownership(
    record: Mapping[str, Any],
    rule: FacetSpec,
    parents: Mapping[str, Ownership] | None,
) -> Ownership | None:
    if rule.parent_field is None:
        return ownership_of(record)
    if not parents:
        return None
    return parents.get(record.get(rule.parent_field))


def discloses(
    record: Mapping[str, Any],
    viewer: RequestContext,
    rule: FacetSpec,
    has_facet_permission: bool,
    parents: Mapping[str, Ownership] | None = None,
) -> bool:
    """Whether ``viewer`` may see the contact fields of ``record``."""
    if viewer.effective_role is Role.SUPER_ADMIN:
        return True
    if (rule.resource_kind, rule.facet) in PUBLIC_FACETS:
        return True
    if viewer.actor_id and viewer.actor_id in _subject_ids(record, rule):
        return True
    if not has_facet_permission:
        return False
    if viewer.effective_role in UNSCOPED_FACET_ROLES:
        return True
    parent = _parent_ownership(record, rule, parents)
    return parent is not None and parent.is_owned_by(viewer.actor_id)


def redact(record: Mapping[str, Any], rule: FacetSpec) -> dict[str, Any]:
    redacted = dict(record)
    for name in rule.contact_fields:
        if name in redacted:
            redacted[name] = REDACTED
    return redacted


@overload
def filter_contacts(
    records: Mapping[str, Any], viewer: RequestContext, facet: Facet,
    has_facet_permission: bool, parents: Mapping[str, Ownership] | None = ...,
) -> dict[str, Any]: ...


@overload
def filter_contacts(
    records: Iterable[Mapping[str, Any]], viewer: RequestContext, facet: Facet,
    has_facet_permission: bool, parents: Mapping[str, Ownership] | None = ...,
) -> list[dict[str, Any]]: ...


def filter_contacts(records, viewer, facet, has_facet_permission, parents=None):
    """
    Redact contact fields of one record or of every record in a list.

    ``parents`` maps a parent grid id to its Ownership; it must be loaded
    alongside the records (for instance with a join) by the caller.
    """
    rule = FACETS[facet]

    def one(record: Mapping[str, Any]) -> dict[str, Any]:
        if discloses(record, viewer, rule, has_facet_permission, parents):
            return dict(record)
        return redact(record, rule)

    if isinstance(records, Mapping):
        return one(records)
    return [one(record) for record in records]
