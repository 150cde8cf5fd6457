from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from ...db.database import get_db
from ...dependencies import get_creation_service, verify_master_token
from ...models import ServerStatus
from ...servers import ServerCreationRequest, ServerCreationService

router = APIRouter(
    prefix="/servers",
    tags=["server-creation"],
    dependencies=[Depends(verify_master_token)],
)


class ServerPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    uuid_short: str
    name: str
    node_id: int
    owner_id: int
    egg_id: int
    allocation_id: int
    memory: int
    disk: int
    image: str
    status: Optional[ServerStatus]
    created_at: datetime


class CreateServerResponse(BaseModel):
    server: ServerPublic
    task_id: Optional[str] = None


@router.post(
    "", response_model=CreateServerResponse, status_code=status.HTTP_201_CREATED
)
async def create_server(
    create_request: ServerCreationRequest,
    session: AsyncSession = Depends(get_db),
    service: ServerCreationService = Depends(get_creation_service),
):
    """Create a server and hand it to the node's daemon in the background.

    The response does not wait for the daemon; poll the returned task for the
    provisioning result.
    """
    created = await service.handle(session, create_request)
    return CreateServerResponse(
        server=ServerPublic.model_validate(created.server),
        task_id=created.provisioning.task_id if created.provisioning else None,
    )
