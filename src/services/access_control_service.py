# src/services/access_control_service.py
from typing import Any, Optional

from schemas.access_schemas import AccessContext, Decision
from services.permissions import Action, Relation, descriptor_for, lookup_requirement
from services.relations import relation_predicate
from utils.exceptions import AccessDeniedException
from utils.logger import setup_logger

logger = setup_logger("ACCESS_CONTROL")


class AccessControlService:
    def decide(
        self,
        ctx: AccessContext,
        kind: Any,
        action: Any,
        instance: Optional[Any] = None,
    ) -> Decision:
        """May the acting user perform ``action`` on ``instance`` of ``kind``"""
        if not ctx.is_active:
            logger.debug(f"Deny {action} on {kind}: user {ctx.user_id} is inactive")
            return Decision.DENY

        requirement = lookup_requirement(kind, ctx.role, action)
        descriptor = descriptor_for(kind)
        if requirement is None or descriptor is None:
            logger.debug(f"Deny unknown combination {kind}/{ctx.role}/{action}")
            return Decision.DENY

        if Relation.NONE in requirement:
            return Decision.DENY
        if Relation.ALL in requirement:
            return Decision.ALLOW

        # Relation requirements need an instance to be evaluated
        if instance is None:
            return Decision.UNKNOWN

        predicate = relation_predicate(ctx, descriptor, requirement)
        decision = Decision.ALLOW if predicate.matches(instance) else Decision.DENY
        logger.debug(
            f"{decision.value} {ctx.role}:{ctx.user_id} {action} {kind} "
            f"via {[r.value for r in requirement]}"
        )
        return decision

    def is_allowed(
        self, ctx: AccessContext, kind: Any, action: Any, instance: Any = None
    ) -> bool:
        return self.decide(ctx, kind, action, instance).allowed

    def ensure_allowed(
        self,
        ctx: AccessContext,
        kind: Any,
        action: Any,
        instance: Any = None,
        detail: Optional[str] = None,
    ) -> None:
        """Raise AccessDeniedException unless the decision is allow"""
        if not self.is_allowed(ctx, kind, action, instance):
            raise AccessDeniedException(
                detail or f"Not allowed to {Action(action).value} this {kind}"
            )


access_control_service = AccessControlService()
