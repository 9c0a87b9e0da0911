from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)


async def rate_limit_handler(_request: Request, exc: Exception):
    """Answer 429 with the same ``reason`` shape as quota rejections."""
    if isinstance(exc, RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"message": f"Rate limit exceeded: {exc.detail}", "reason": "rate_limited"},
        )


def callback_key_func(request: Request) -> str:
    # Per provider path: one noisy provider behind a shared egress address
    # must not use up the budget of the others.
    return f"{request.url.path}:{get_remote_address(request)}"


def setup_rate_limiter(app: FastAPI) -> None:
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)


def get_limiter() -> Limiter:
    return limiter
