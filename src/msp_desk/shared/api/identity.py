"""
Caller Identity Resolution
==========================

Authentication happens upstream: the gateway forwards the caller's user id
and role as headers. This module turns those headers into the effective
`Actor` for a route, including the admin "acting as" substitution.

An admin calling a company route acts as the company user named in
`X-Act-As-CompanyUserId`; on an expert route, as the expert named in
`X-Act-As-ExpertUserId`. Application services never see the substitution.
"""

from typing import Callable, Optional

from fastapi import Header

from msp_desk.config import ActorRole
from msp_desk.core import Actor, AuthenticationException, ForbiddenException, ValidationException

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"
ACT_AS_COMPANY_HEADER = "X-Act-As-CompanyUserId"
ACT_AS_EXPERT_HEADER = "X-Act-As-ExpertUserId"


def resolve_actor(
    route_role: ActorRole,
    user_id: Optional[str],
    user_role: Optional[str],
    act_as_company: Optional[str] = None,
    act_as_expert: Optional[str] = None
) -> Actor:
    """
    Resolve the effective actor for a route serving `route_role`.

    Raises:
        AuthenticationException: no identity headers
        ForbiddenException: caller's role may not use this route
        ValidationException: admin on a company/expert route without act-as target
    """
    if not user_id or not user_role:
        raise AuthenticationException("Caller identity is required")

    try:
        caller_role = ActorRole(user_role.strip().lower())
    except ValueError:
        raise ForbiddenException(f"Unknown role '{user_role}'")

    if caller_role == route_role:
        return Actor(role=route_role, user_id=user_id)

    if caller_role != ActorRole.ADMIN:
        raise ForbiddenException(f"Role '{caller_role.value}' cannot access {route_role.value} routes")

    if route_role == ActorRole.COMPANY:
        target, header, label = act_as_company, ACT_AS_COMPANY_HEADER, "Company"
    else:
        target, header, label = act_as_expert, ACT_AS_EXPERT_HEADER, "Expert"

    if not target or not target.strip():
        raise ValidationException.for_field(header, f"{label} context is required.")

    return Actor(role=route_role, user_id=target.strip())


def actor_dependency(route_role: ActorRole) -> Callable[..., Actor]:
    """Build a FastAPI dependency that resolves the actor for `route_role` routes."""

    async def dependency(
        x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER),
        x_user_role: Optional[str] = Header(None, alias=USER_ROLE_HEADER),
        x_act_as_company: Optional[str] = Header(None, alias=ACT_AS_COMPANY_HEADER),
        x_act_as_expert: Optional[str] = Header(None, alias=ACT_AS_EXPERT_HEADER),
    ) -> Actor:
        return resolve_actor(
            route_role, x_user_id, x_user_role, x_act_as_company, x_act_as_expert
        )

    return dependency


get_company_actor = actor_dependency(ActorRole.COMPANY)
get_expert_actor = actor_dependency(ActorRole.EXPERT)
get_admin_actor = actor_dependency(ActorRole.ADMIN)
