"""Quest API endpoints: quest CRUD, membership transitions and chat history."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from questlog.auth.dependencies import get_current_user_id
from questlog.database import get_session
from questlog.db.models import Quest, QuestMessage, User, UserQuest
from questlog.errors import ServiceError
from questlog.middleware.error_handler import service_error_status
from questlog.quests import service
from questlog.quests.messages import chat_frame, list_messages, post_message
from questlog.quests.schemas import (
    CreateQuestRequest,
    FinishMembershipRequest,
    InviteRequest,
    MembershipResponse,
    PostMessageRequest,
    QuestMemberResponse,
    QuestMessageResponse,
    QuestOwnerResponse,
    QuestResponse,
    TargetUserRequest,
    UpdateQuestRequest,
)
from questlog.ws.manager import manager

router = APIRouter(prefix="/quests", tags=["Quests"])


# ── Helpers ──


def _http_error(exc: ServiceError) -> HTTPException:
    """Map a service error to its HTTP status."""
    return HTTPException(status_code=service_error_status(exc), detail=str(exc))


def build_quest_response(quest: Quest) -> QuestResponse:
    return QuestResponse(
        quest_id=quest.id,
        quest_name=quest.quest_name,
        description=quest.description,
        duration=quest.duration,
        checkin_frequency=quest.checkin_frequency,
        time=quest.time,
        icon_id=quest.icon_id,
        start_date=quest.start_date,
        end_date=quest.end_date,
        category_id=quest.category_id,
        status=quest.status,
        created_by=quest.created_by,
        created_at=quest.created_at,
        updated_at=quest.updated_at,
    )


def _membership_response(membership: UserQuest) -> MembershipResponse:
    return MembershipResponse(
        user_quest_id=membership.id,
        quest_id=membership.quest_id,
        user_id=membership.user_id,
        role=membership.role,
        status=membership.status,
        joined_at=membership.joined_at,
    )


def _message_response(message: QuestMessage, author: User) -> QuestMessageResponse:
    return QuestMessageResponse(
        message_id=message.id,
        quest_id=message.quest_id,
        user_id=message.user_id,
        username=author.username,
        message_text=message.message_text,
        sent_at=message.sent_at,
    )


# ── Quests ──


@router.get("", response_model=list[QuestResponse])
async def list_quests_endpoint(
    _user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """List all quests."""
    return [build_quest_response(q) for q in await service.list_quests(db)]


@router.post("", response_model=QuestResponse, status_code=201)
async def create_quest_endpoint(
    body: CreateQuestRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Create a quest. The creator becomes its owner."""
    quest = await service.create_quest(db, user_id, body.model_dump())
    return build_quest_response(quest)


@router.get("/{quest_id}", response_model=QuestResponse)
async def get_quest_endpoint(
    quest_id: int,
    _user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Get a quest by ID."""
    quest = await service.get_quest(db, quest_id)
    if quest is None:
        raise HTTPException(status_code=404, detail="Quest not found")
    return build_quest_response(quest)


@router.put("/{quest_id}", response_model=QuestResponse)
async def update_quest_endpoint(
    quest_id: int,
    body: UpdateQuestRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Update quest fields (owner only)."""
    try:
        quest = await service.update_quest(db, quest_id, user_id, body.model_dump(exclude_unset=True))
        await db.commit()
    except ServiceError as e:
        raise _http_error(e) from e
    return build_quest_response(quest)


@router.delete("/{quest_id}")
async def delete_quest_endpoint(
    quest_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Delete a quest (owner only)."""
    try:
        await service.delete_quest(db, quest_id, user_id)
        await db.commit()
    except ServiceError as e:
        raise _http_error(e) from e
    return {"message": "Quest deleted successfully"}


@router.get("/{quest_id}/owner", response_model=QuestOwnerResponse)
async def get_quest_owner_endpoint(
    quest_id: int,
    _user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Get the owner of a quest."""
    try:
        owner = await service.get_quest_owner(db, quest_id)
    except ServiceError as e:
        raise _http_error(e) from e
    return QuestOwnerResponse(user_id=owner.id, username=owner.username, fullname=owner.fullname)


@router.get("/{quest_id}/users", response_model=list[QuestMemberResponse])
async def get_quest_members_endpoint(
    quest_id: int,
    _user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """List every membership row of a quest with the member's name."""
    try:
        members = await service.get_quest_members(db, quest_id)
    except ServiceError as e:
        raise _http_error(e) from e
    return [
        QuestMemberResponse(
            user_id=user.id,
            username=user.username,
            fullname=user.fullname,
            role=membership.role,
            status=membership.status,
        )
        for membership, user in members
    ]


# ── Membership transitions ──


@router.post("/{quest_id}/request", response_model=MembershipResponse, status_code=201)
async def request_to_join_endpoint(
    quest_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Ask to join a quest. Creates a pending membership."""
    try:
        membership = await service.request_to_join(db, quest_id, user_id)
        await db.commit()
    except ServiceError as e:
        raise _http_error(e) from e
    return _membership_response(membership)


@router.delete("/{quest_id}/request")
async def reject_request_endpoint(
    quest_id: int,
    body: TargetUserRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Reject a pending join request (owner only)."""
    try:
        await service.reject_request(db, quest_id, user_id, body.user_id)
        await db.commit()
    except ServiceError as e:
        raise _http_error(e) from e
    return {"message": "Request rejected"}


@router.post("/{quest_id}/approve-request", response_model=MembershipResponse)
async def approve_request_endpoint(
    quest_id: int,
    body: TargetUserRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Approve a pending join request (owner only)."""
    try:
        membership = await service.approve_request(db, quest_id, user_id, body.user_id)
        await db.commit()
    except ServiceError as e:
        raise _http_error(e) from e
    return _membership_response(membership)


@router.post("/{quest_id}/invite", response_model=MembershipResponse, status_code=201)
async def invite_endpoint(
    quest_id: int,
    body: InviteRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Invite a user to the quest (owner or active participant)."""
    try:
        membership = await service.invite(db, quest_id, user_id, body.receiver_id)
        await db.commit()
    except ServiceError as e:
        raise _http_error(e) from e
    return _membership_response(membership)


@router.delete("/{quest_id}/invite")
async def decline_invite_endpoint(
    quest_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Decline the caller's own pending invite."""
    try:
        await service.decline_invite(db, quest_id, user_id)
        await db.commit()
    except ServiceError as e:
        raise _http_error(e) from e
    return {"message": "Invite declined"}


@router.post("/{quest_id}/approve-invite", response_model=MembershipResponse)
async def approve_invite_endpoint(
    quest_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Accept the caller's own pending invite."""
    try:
        membership = await service.accept_invite(db, quest_id, user_id)
        await db.commit()
    except ServiceError as e:
        raise _http_error(e) from e
    return _membership_response(membership)


@router.delete("/{quest_id}/members/{member_id}")
async def remove_member_endpoint(
    quest_id: int,
    member_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Remove a participant from the quest (owner only)."""
    try:
        await service.remove_member(db, quest_id, user_id, member_id)
        await db.commit()
    except ServiceError as e:
        raise _http_error(e) from e
    return {"message": "Member removed"}


@router.delete("/{quest_id}/membership")
async def leave_quest_endpoint(
    quest_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Leave a quest (participants only)."""
    try:
        await service.leave_quest(db, quest_id, user_id)
        await db.commit()
    except ServiceError as e:
        raise _http_error(e) from e
    return {"message": "Left quest"}


@router.put("/{quest_id}/membership", response_model=MembershipResponse)
async def finish_membership_endpoint(
    quest_id: int,
    body: FinishMembershipRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Mark the caller's active membership completed or dropped."""
    try:
        membership = await service.finish_membership(db, quest_id, user_id, body.status)
        await db.commit()
    except ServiceError as e:
        raise _http_error(e) from e
    return _membership_response(membership)


# ── Chat history ──


@router.get("/{quest_id}/messages", response_model=list[QuestMessageResponse])
async def list_messages_endpoint(
    quest_id: int,
    _user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Fetch a quest's chat history, oldest first."""
    return [_message_response(m, u) for m, u in await list_messages(db, quest_id)]


@router.post("/{quest_id}/messages", response_model=QuestMessageResponse, status_code=201)
async def post_message_endpoint(
    quest_id: int,
    body: PostMessageRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Store a chat message, then fan it out to open WebSocket connections."""
    if body.user_id != user_id:
        raise HTTPException(status_code=403, detail="Cannot post messages as another user")
    try:
        message, author = await post_message(db, quest_id, user_id, body.message_text)
        await db.commit()
    except ServiceError as e:
        raise _http_error(e) from e

    await manager.broadcast(chat_frame(message, author))
    return _message_response(message, author)
