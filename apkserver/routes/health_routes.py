"""Liveness route for the load balancer."""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["Health"])


@router.get("/healthz", response_class=PlainTextResponse)
async def healthz():
    """
    Liveness check. Returns 200 whenever the process accepts connections,
    whether or not the target file exists.
    """
    return PlainTextResponse("ok")
