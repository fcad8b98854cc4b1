"""
API dependencies - service container, device identity and error mapping
"""
from dataclasses import dataclass

from fastapi import Header, HTTPException, Request

from app.core.exceptions import ColocacionError, ConfirmationRequired
from app.services import ServiceContainer


@dataclass
class Actor:
    user_id: str
    device_id: str


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_actor(
    x_user_id: str = Header(..., min_length=1),
    x_device_id: str = Header("unknown"),
) -> Actor:
    """Handheld devices identify themselves with X-User-Id / X-Device-Id"""
    return Actor(user_id=x_user_id, device_id=x_device_id)


def http_error(e: ColocacionError) -> HTTPException:
    if isinstance(e, ConfirmationRequired):
        return HTTPException(
            status_code=e.status_code,
            detail={
                "message": e.message,
                "requires_confirmation": True,
                "confirmation_token": e.confirmation_token,
                "warnings": e.warnings,
            },
        )
    return HTTPException(status_code=e.status_code, detail=e.message)
