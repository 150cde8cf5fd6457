import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from .config import settings
from .daemon import DaemonClient, get_daemon_client
from .logger import logger
from .security import TokenCodec, get_token_codec
from .servers import ServerCreationService


def verify_master_token(authorization: Annotated[str | None, Header()] = None):
    """Require ``Authorization: Bearer <master token>`` on API calls."""
    scheme, _, given_token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(
        given_token, settings.master_token
    ):
        logger.warning("Rejected API call with a missing or invalid master token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="This endpoint requires the master token",
        )


def get_daemon() -> DaemonClient:
    return get_daemon_client()


def get_codec() -> TokenCodec:
    return get_token_codec()


def get_creation_service(
    daemon: DaemonClient = Depends(get_daemon),
) -> ServerCreationService:
    return ServerCreationService(daemon)
