from __future__ import annotations

from fastapi import APIRouter

from gatekeeper.core.rate_limit import get_counter_store

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Health check endpoint.

    Reports liveness plus lightweight counter store metrics (backend and
    entry counts, never keys).
    """

    return {"status": "ok", "counter_store": get_counter_store().stats()}
