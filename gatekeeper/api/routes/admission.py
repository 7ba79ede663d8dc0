from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query, Request, Response

from gatekeeper.core.auth import require_admin_key
from gatekeeper.core.client_ip import get_client_ip, get_peer_ip
from gatekeeper.core.policies import POLICY_PRESETS, Policy, get_policy
from gatekeeper.core.rate_limit import enforce, get_rate_limiter, rate_limit
from gatekeeper.schemas.admission import (
    AdmissionRequest,
    DecisionResponse,
    PolicyResponse,
    ResetResponse,
)
from gatekeeper.services.rate_limiter import Decision, RateLimiter

router = APIRouter(tags=["Admission"])

# Caps admin key guessing per socket peer; proxy headers are not consulted.
ADMIN_RESET_RATE_LIMIT = Policy(
    max_requests=30,
    window_ms=60 * 1000,
    key_prefix="admin-reset",
    message="Too many reset requests. Please try again in a minute.",
)

Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]


def _unmetered(limiter: RateLimiter, policy: Policy) -> Decision:
    """Decision reported when enforcement is disabled or failed open."""
    return Decision(
        success=True,
        limit=policy.max_requests,
        remaining=policy.max_requests,
        reset_at=limiter.now_ms() + policy.window_ms,
    )


@router.get("/policies", response_model=list[PolicyResponse])
def list_policies() -> list[PolicyResponse]:
    """List the registered policy presets."""

    return [PolicyResponse.from_policy(name, policy) for name, policy in POLICY_PRESETS.items()]


@router.post("/admission/{policy_name}", response_model=DecisionResponse)
def check_admission(
    policy_name: str,
    request: Request,
    response: Response,
    limiter: Limiter,
    body: Annotated[AdmissionRequest | None, Body()] = None,
) -> DecisionResponse:
    """Consume one request from the caller's budget under a policy preset.

    Returns 200 with the decision when admitted, 429 with Retry-After and
    X-RateLimit-* headers when denied, 404 for unknown policies, and 503
    when the store is down and the policy fails closed.
    """

    policy = get_policy(policy_name)
    identifier = (body.identifier if body else None) or get_client_ip(request)

    decision = enforce(limiter, identifier, policy, response)
    if decision is None:
        decision = _unmetered(limiter, policy)
    return DecisionResponse.from_decision(policy_name, decision)


@router.get("/admission/{policy_name}/quota", response_model=DecisionResponse)
def get_quota(
    policy_name: str,
    request: Request,
    limiter: Limiter,
    identifier: Annotated[str | None, Query(min_length=1, max_length=512)] = None,
) -> DecisionResponse:
    """Report remaining quota without consuming any of it."""

    policy = get_policy(policy_name)
    decision = limiter.peek(identifier or get_client_ip(request), policy)
    return DecisionResponse.from_decision(policy_name, decision)


@router.delete(
    "/admission/{policy_name}/{identifier}",
    response_model=ResetResponse,
    tags=["Admin"],
    dependencies=[
        Depends(rate_limit(ADMIN_RESET_RATE_LIMIT, identifier_func=get_peer_ip)),
        Depends(require_admin_key),
    ],
)
def reset_admission(policy_name: str, identifier: str, limiter: Limiter) -> ResetResponse:
    """Clear all counting state for an identifier under a policy (admin only)."""

    policy = get_policy(policy_name)
    limiter.reset(identifier, policy.key_prefix)
    return ResetResponse(policy=policy_name)
