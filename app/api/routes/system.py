from fastapi import APIRouter, Request

from api.dependencies.rate_limits import get_limiter
from infrastructure.resilience import (
    get_all_circuit_breaker_stats,
    get_open_circuit_breakers,
)
from infrastructure.services import SettingsDep

router = APIRouter(tags=["System"])
limiter = get_limiter()


# Load balancer health checks hit these every few seconds
@router.get("/version")
@limiter.limit("50/minute")
def get_version(request: Request, settings: SettingsDep):  # pylint: disable=unused-argument
    """Deployed git revision."""
    return {"version": settings.GIT_SHA}


@router.get("/health")
@limiter.limit("50/minute")
def get_health(request: Request):  # pylint: disable=unused-argument
    return {"status": "ok"}


@router.get("/health/providers")
@limiter.limit("50/minute")
def get_provider_health(request: Request):  # pylint: disable=unused-argument
    """Delivery provider circuits.

    ``degraded`` while any provider circuit is open; sends on that channel
    go to the fallback provider until the circuit recovers.
    """
    open_circuits = get_open_circuit_breakers()
    return {
        "status": "degraded" if open_circuits else "ok",
        "open_circuits": open_circuits,
        "circuits": get_all_circuit_breaker_stats(),
    }
