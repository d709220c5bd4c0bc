"""Operator actions from the CRM: take over, hand back, reply."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.schemas.operator import OperatorSendRequest, OperatorSendResponse, OwnershipRequest, OwnershipResponse
from app.services.conversation_service import NotFoundError
from app.services.operator_service import OperatorActionError, change_ownership, send_operator_reply
from app.services.whatsapp_service import OutboundContent

router = APIRouter(prefix="/api")


def require_operator_token(x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token")) -> None:
    expected = settings.operator_api_token
    if not expected:
        return
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


@router.post(
    "/conversations/{conversation_id}/ownership",
    response_model=OwnershipResponse,
    dependencies=[Depends(require_operator_token)],
)
def update_ownership(conversation_id: UUID, request: OwnershipRequest, db: Session = Depends(get_db)):
    try:
        old, new = change_ownership(db, conversation_id, request.action)
        db.commit()
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=e.message)
    except OperatorActionError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=e.message)

    return OwnershipResponse(
        success=True,
        conversation_id=conversation_id,
        action=request.action,
        old_ownership=old,
        new_ownership=new,
    )


@router.post("/messaging/send", response_model=OperatorSendResponse, dependencies=[Depends(require_operator_token)])
async def send_message(request: OperatorSendRequest, db: Session = Depends(get_db)):
    content = OutboundContent(
        message_type=request.type,
        body=request.body,
        template_name=request.templateName,
        template_params=request.templateParams,
        media_url=request.mediaUrl,
        media_caption=request.mediaCaption,
    )
    try:
        message = await send_operator_reply(db, request.conversationId, content)
        db.commit()
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=e.message)
    except OperatorActionError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=e.message)

    return OperatorSendResponse(
        success=message.status != "failed",
        messageId=message.id,
        status=message.status,
        error=message.error_message,
    )
