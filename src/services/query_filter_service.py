# src/services/query_filter_service.py
from typing import Any

from sqlalchemy import false

from schemas.access_schemas import AccessContext
from services.filters import MatchAll, MatchNone, Predicate
from services.permissions import Relation, descriptor_for, lookup_requirement
from services.relations import relation_predicate
from utils.logger import setup_logger

logger = setup_logger("QUERY_FILTER")


class QueryFilterService:
    def build_filter(
        self, ctx: AccessContext, kind: Any, action: Any = "read"
    ) -> Predicate:
        """
        Predicate selecting exactly the rows ``decide`` would allow.

        Reads the same compiled requirement and the same relation clauses as
        the decision engine, so the two cannot drift apart.
        """
        if not ctx.is_active:
            return MatchNone()

        requirement = lookup_requirement(kind, ctx.role, action)
        descriptor = descriptor_for(kind)
        if requirement is None or descriptor is None:
            logger.debug(f"Empty filter for unknown combination {kind}/{ctx.role}")
            return MatchNone()

        if Relation.NONE in requirement:
            return MatchNone()
        if Relation.ALL in requirement:
            return MatchAll()

        return relation_predicate(ctx, descriptor, requirement)

    def build_clause(self, ctx: AccessContext, kind: Any, action: Any = "read"):
        """The filter compiled for the kind's mapped model"""
        descriptor = descriptor_for(kind)
        if descriptor is None:
            return false()
        return self.build_filter(ctx, kind, action).to_clause(descriptor.model)


query_filter_service = QueryFilterService()
