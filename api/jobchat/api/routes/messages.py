import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from jobchat.core.security import get_principal
from jobchat.schemas.conversations import ConversationListOut
from jobchat.schemas.messages import MessageCreateRequest, MessageListOut, MessageOut, UnreadCountOut
from jobchat.schemas.pagination import MAX_PAGE, build_pagination
from jobchat.services.messaging import MessagingService, get_messaging_service
from jobchat.services.repository import (
    RepositoryError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)

router = APIRouter()
logger = logging.getLogger(__name__)

SERVER_ERROR_DETAIL = "server error"


def _to_http_error(exc: RepositoryError) -> HTTPException:
    if isinstance(exc, RepositoryNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, RepositoryForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, RepositoryValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc))
    if isinstance(exc, RepositoryUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    logger.error("unhandled repository error: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=SERVER_ERROR_DETAIL)


@router.get("/conversations", response_model=ConversationListOut)
async def list_conversations(
    principal=Depends(get_principal),
    service: MessagingService = Depends(get_messaging_service),
    page: int = Query(default=1, ge=1, le=MAX_PAGE),
) -> ConversationListOut:
    try:
        conversations, total = await service.list_conversations(principal, page)
    except RepositoryError as exc:
        raise _to_http_error(exc) from exc

    return ConversationListOut(
        conversations=conversations,
        pagination=build_pagination(page=page, page_size=service.page_size, total_items=total),
    )


@router.get("/unread/count", response_model=UnreadCountOut)
async def count_unread(
    principal=Depends(get_principal),
    service: MessagingService = Depends(get_messaging_service),
) -> UnreadCountOut:
    try:
        count = await service.count_unread(principal)
    except RepositoryError as exc:
        raise _to_http_error(exc) from exc
    return UnreadCountOut(count=count)


@router.get("/{conversation_id}", response_model=MessageListOut)
async def list_messages(
    conversation_id: str,
    principal=Depends(get_principal),
    service: MessagingService = Depends(get_messaging_service),
    page: int = Query(default=1, ge=1, le=MAX_PAGE),
) -> MessageListOut:
    try:
        messages, total = await service.list_messages(principal, conversation_id, page)
    except RepositoryError as exc:
        raise _to_http_error(exc) from exc

    return MessageListOut(
        messages=[MessageOut(**row) for row in messages],
        pagination=build_pagination(page=page, page_size=service.page_size, total_items=total),
    )


@router.post("/{conversation_id}", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: str,
    payload: MessageCreateRequest,
    principal=Depends(get_principal),
    service: MessagingService = Depends(get_messaging_service),
) -> MessageOut:
    try:
        row = await service.send_message(principal, conversation_id, payload.content)
    except RepositoryError as exc:
        raise _to_http_error(exc) from exc
    return MessageOut(**row)
