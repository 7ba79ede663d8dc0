"""Request/response models for the admission API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from gatekeeper.core.policies import FailMode, Policy
from gatekeeper.services.rate_limiter import Decision


class AdmissionRequest(BaseModel):
    """Body of an admission check.

    When ``identifier`` is omitted the client IP of the caller is used.
    """

    identifier: str | None = Field(
        None,
        min_length=1,
        max_length=512,
        description="Caller identity to count against (account id, IP, ...)",
    )


class DecisionResponse(BaseModel):
    """Outcome of an admission check or quota lookup."""

    policy: str = Field(..., description="Policy preset name")
    success: bool = Field(..., description="Whether the request is (or would be) admitted")
    limit: int = Field(..., description="Max requests per window")
    remaining: int = Field(..., ge=0, description="Remaining requests in the current window")
    reset_at: int = Field(..., description="UNIX epoch seconds when the window resets")
    retry_after_seconds: int | None = Field(
        None,
        description="Seconds until a new admission is possible (denials only)",
    )

    @classmethod
    def from_decision(cls, policy_name: str, decision: Decision) -> "DecisionResponse":
        return cls(
            policy=policy_name,
            success=decision.success,
            limit=decision.limit,
            remaining=decision.remaining,
            reset_at=decision.reset_at_seconds,
            retry_after_seconds=decision.retry_after_seconds,
        )


class PolicyResponse(BaseModel):
    name: str
    max_requests: int
    window_ms: int
    key_prefix: str
    fail_mode: FailMode

    @classmethod
    def from_policy(cls, name: str, policy: Policy) -> "PolicyResponse":
        return cls(
            name=name,
            max_requests=policy.max_requests,
            window_ms=policy.window_ms,
            key_prefix=policy.key_prefix,
            fail_mode=policy.fail_mode,
        )


class ResetResponse(BaseModel):
    policy: str
    reset: bool = True
