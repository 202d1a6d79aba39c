# src/services/permissions.py
"""
Static permission matrix.

Every (resource kind, role, action) combination maps to a tuple of relation
requirements. The table is compiled once at import; a missing or malformed
combination raises at startup instead of denying silently at request time.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Type

from models.user import Role, User
from models.rehab_task import RehabTask
from models.progress import Progress
from models.comment import Comment
from models.notification import Notification


class ResourceKind(str, Enum):
    REHAB_TASK = "rehabTask"
    PROGRESS = "progress"
    COMMENT = "comment"
    NOTIFICATION = "notification"
    USER = "user"


class Action(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"


class Relation(str, Enum):
    NONE = "none"
    ALL = "all"
    OWN = "own"
    OWN_PROFILE = "own_profile"
    ASSIGNED = "assigned"
    ASSIGNED_PATIENTS = "assigned_patients"
    ASSIGNED_PATIENTS_CONTEXT = "assigned_patients_context"
    OWN_CONTEXT = "own_context"
    VISIBLE_TO_USER = "visible_to_user"
    OWN_OR_MODERATION = "own_or_moderation"
    CREATE_FOR_ASSIGNED = "create_for_assigned"
    CREATE_FOR_ALL = "create_for_all"
    ASSIGNED_PATIENTS_LIMITED = "assigned_patients_limited"
    ALL_LIMITED = "all_limited"


# Relations that are decided without looking at an instance
UNCONDITIONAL_RELATIONS = frozenset({Relation.NONE, Relation.ALL})


@dataclass(frozen=True)
class ResourceDescriptor:
    """Which model columns play which part in relation checks"""

    model: Type
    owner: Optional[str] = None  # the subject the resource belongs to
    patient: Optional[str] = None  # related patient anchor
    creator: Optional[str] = None  # authoring user
    profile: Optional[str] = None  # the row *is* this user
    recipients: Optional[Tuple[str, str]] = None  # (member collection, user key)
    visibility: Optional[str] = None


RESOURCE_DESCRIPTORS: Dict[ResourceKind, ResourceDescriptor] = {
    ResourceKind.REHAB_TASK: ResourceDescriptor(
        model=RehabTask,
        owner="assigned_to_id",
        patient="assigned_to_id",
        creator="assigned_by_id",
    ),
    ResourceKind.PROGRESS: ResourceDescriptor(
        model=Progress,
        owner="patient_id",
        patient="patient_id",
        creator="recorded_by_id",
    ),
    ResourceKind.COMMENT: ResourceDescriptor(
        model=Comment,
        owner="author_id",
        patient="related_patient_id",
        creator="author_id",
        recipients=("visible_to", "user_id"),
        visibility="visibility",
    ),
    ResourceKind.NOTIFICATION: ResourceDescriptor(
        model=Notification,
        owner="recipient_id",
        patient="recipient_id",
        creator="sender_id",
    ),
    ResourceKind.USER: ResourceDescriptor(
        model=User,
        owner="id",
        patient="id",
        profile="id",
    ),
}

R = Relation

PERMISSION_MATRIX = {
    ResourceKind.REHAB_TASK: {
        Role.PATIENT: {"read": (R.OWN,), "write": (R.NONE,), "delete": (R.NONE,)},
        Role.PHYSIOTHERAPIST: {
            "read": (R.ASSIGNED,),
            "write": (R.ASSIGNED,),
            "delete": (R.ASSIGNED,),
        },
        Role.DOCTOR: {"read": (R.ALL,), "write": (R.ALL,), "delete": (R.ALL,)},
    },
    ResourceKind.PROGRESS: {
        Role.PATIENT: {"read": (R.OWN,), "write": (R.OWN,), "delete": (R.NONE,)},
        Role.PHYSIOTHERAPIST: {
            "read": (R.ASSIGNED_PATIENTS,),
            "write": (R.NONE,),
            "delete": (R.NONE,),
        },
        Role.DOCTOR: {"read": (R.ALL,), "write": (R.NONE,), "delete": (R.NONE,)},
    },
    ResourceKind.COMMENT: {
        Role.PATIENT: {
            "read": (R.VISIBLE_TO_USER,),
            "write": (R.OWN_CONTEXT,),
            "delete": (R.OWN,),
        },
        Role.PHYSIOTHERAPIST: {
            "read": (R.ASSIGNED_PATIENTS_CONTEXT, R.OWN_CONTEXT),
            "write": (R.ASSIGNED_PATIENTS_CONTEXT,),
            "delete": (R.OWN,),
        },
        Role.DOCTOR: {
            "read": (R.ALL,),
            "write": (R.ALL,),
            "delete": (R.OWN_OR_MODERATION,),
        },
    },
    ResourceKind.NOTIFICATION: {
        Role.PATIENT: {"read": (R.OWN,), "write": (R.NONE,), "delete": (R.NONE,)},
        Role.PHYSIOTHERAPIST: {
            "read": (R.OWN,),
            "write": (R.CREATE_FOR_ASSIGNED,),
            "delete": (R.NONE,),
        },
        Role.DOCTOR: {
            "read": (R.OWN,),
            "write": (R.CREATE_FOR_ALL,),
            "delete": (R.NONE,),
        },
    },
    ResourceKind.USER: {
        Role.PATIENT: {
            "read": (R.OWN_PROFILE,),
            "write": (R.OWN_PROFILE,),
            "delete": (R.NONE,),
        },
        Role.PHYSIOTHERAPIST: {
            "read": (R.ASSIGNED_PATIENTS, R.OWN_PROFILE),
            "write": (R.ASSIGNED_PATIENTS_LIMITED,),
            "delete": (R.NONE,),
        },
        Role.DOCTOR: {
            "read": (R.ALL,),
            "write": (R.ALL_LIMITED,),
            "delete": (R.NONE,),
        },
    },
}

del R

Requirement = Tuple[Relation, ...]


class PermissionMatrixError(RuntimeError):
    """Raised at import when the matrix does not cover every combination"""


def _compile(matrix) -> Dict[Tuple[ResourceKind, Role, Action], Requirement]:
    compiled: Dict[Tuple[ResourceKind, Role, Action], Requirement] = {}

    for kind in ResourceKind:
        if kind not in RESOURCE_DESCRIPTORS:
            raise PermissionMatrixError(f"No resource descriptor for {kind.value}")
        by_role = matrix.get(kind)
        if by_role is None:
            raise PermissionMatrixError(f"No matrix entry for {kind.value}")

        for role in Role:
            by_action = by_role.get(role)
            if by_action is None:
                raise PermissionMatrixError(
                    f"No matrix entry for {kind.value}/{role.value}"
                )

            for action in Action:
                relations = tuple(Relation(r) for r in by_action.get(action.value, ()))
                if not relations:
                    raise PermissionMatrixError(
                        f"No requirement for {kind.value}/{role.value}/{action.value}"
                    )
                if len(relations) > 1 and UNCONDITIONAL_RELATIONS & set(relations):
                    raise PermissionMatrixError(
                        f"'none' and 'all' must stand alone in "
                        f"{kind.value}/{role.value}/{action.value}"
                    )
                compiled[(kind, role, action)] = relations

    return compiled


COMPILED_MATRIX = _compile(PERMISSION_MATRIX)


def lookup_requirement(kind, role, action) -> Optional[Requirement]:
    """Requirement for the combination, or None when any part is unknown"""
    try:
        key = (ResourceKind(kind), Role(role), Action(action))
    except ValueError:
        return None
    return COMPILED_MATRIX.get(key)


def descriptor_for(kind) -> Optional[ResourceDescriptor]:
    try:
        return RESOURCE_DESCRIPTORS.get(ResourceKind(kind))
    except ValueError:
        return None
