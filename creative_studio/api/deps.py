"""Shared router plumbing: the runtime services handle and the error shape."""

from fastapi import HTTPException
from fastapi.responses import JSONResponse

from creative_studio.services import Services

# Set by main.py during lifespan
_services: Services | None = None


def set_services(services: Services | None) -> None:
    global _services
    _services = services


def get_services() -> Services:
    if _services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return _services


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def peek_services() -> Services | None:
    """The services handle without the 503, for health reporting."""
    return _services
