# src/services/relations.py
"""
Relation vocabulary translated into predicates.

``RELATION_CLAUSES`` is the only place a relation gets its meaning. The
decision engine evaluates these predicates against one instance, the query
filter compiles the very same predicates into SQL.
"""
from typing import Callable, Dict, Iterable, Optional

from models.comment import Visibility
from schemas.access_schemas import AccessContext
from services.filters import (
    ContainsMember,
    FieldEquals,
    FieldIn,
    MatchAll,
    MatchNone,
    Predicate,
    all_of,
    any_of,
)
from services.permissions import (
    Relation,
    ResourceDescriptor,
    UNCONDITIONAL_RELATIONS,
)

ClauseBuilder = Callable[[AccessContext, ResourceDescriptor], Predicate]


def _equals(field: Optional[str], value) -> Predicate:
    if field is None:
        return MatchNone()
    return FieldEquals(field, value)


def _within(field: Optional[str], values) -> Predicate:
    if field is None:
        return MatchNone()
    return FieldIn(field, values)


def _own(ctx, desc):
    return _equals(desc.owner, ctx.user_id)


def _own_profile(ctx, desc):
    return _equals(desc.profile, ctx.user_id)


def _assigned(ctx, desc):
    return _equals(desc.creator, ctx.user_id)


def _assigned_patients(ctx, desc):
    return _within(desc.patient, ctx.assigned_patient_ids)


def _own_context(ctx, desc):
    return any_of(
        _equals(desc.patient, ctx.user_id), _equals(desc.creator, ctx.user_id)
    )


def _visible_to_user(ctx, desc):
    if desc.recipients is None or desc.visibility is None:
        return MatchNone()
    collection, key = desc.recipients
    return any_of(
        ContainsMember(collection, key, ctx.user_id),
        FieldEquals(desc.visibility, Visibility.ALL_VISIBLE),
        all_of(
            FieldEquals(desc.visibility, Visibility.PATIENT_VISIBLE),
            _equals(desc.patient, ctx.user_id),
        ),
    )


def _own_or_moderation(ctx, desc):
    if ctx.is_doctor:
        return MatchAll()
    return _equals(desc.creator, ctx.user_id)


def _everything(ctx, desc):
    return MatchAll()


RELATION_CLAUSES: Dict[Relation, ClauseBuilder] = {
    Relation.OWN: _own,
    Relation.OWN_PROFILE: _own_profile,
    Relation.ASSIGNED: _assigned,
    Relation.ASSIGNED_PATIENTS: _assigned_patients,
    Relation.ASSIGNED_PATIENTS_CONTEXT: _assigned_patients,
    Relation.OWN_CONTEXT: _own_context,
    Relation.VISIBLE_TO_USER: _visible_to_user,
    Relation.OWN_OR_MODERATION: _own_or_moderation,
    Relation.CREATE_FOR_ASSIGNED: _assigned_patients,
    Relation.CREATE_FOR_ALL: _everything,
    Relation.ASSIGNED_PATIENTS_LIMITED: _assigned_patients,
    Relation.ALL_LIMITED: _everything,
}

_missing = set(Relation) - UNCONDITIONAL_RELATIONS - set(RELATION_CLAUSES)
if _missing:
    raise RuntimeError(
        "Relations without a clause: " + ", ".join(sorted(r.value for r in _missing))
    )


def relation_predicate(
    ctx: AccessContext, descriptor: ResourceDescriptor, relations: Iterable[Relation]
) -> Predicate:
    """OR of the clauses for instance-dependent relations"""
    return any_of(*(RELATION_CLAUSES[r](ctx, descriptor) for r in relations))
