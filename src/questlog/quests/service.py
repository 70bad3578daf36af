"""Quest business logic and the per-quest membership state machine.

Rules:
- A quest and its owner membership row are created together or not at all
- One membership row per (user, quest); exactly one owner row per quest
- Only the owner approves or rejects join requests and removes members
- Owners and active participants may invite; only the invitee accepts or declines
- Status transitions are conditional updates: if the row is not in the
  expected status (including because a concurrent request already moved it)
  nothing changes and the caller gets NotFoundError
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from questlog.database import unit_of_work
from questlog.db.models import Quest, QuestMessage, User, UserQuest
from questlog.errors import ConflictError, ForbiddenError, NotFoundError

logger = structlog.get_logger()

ROLE_OWNER = "owner"
ROLE_PARTICIPANT = "participant"

STATUS_PENDING = "pending"
STATUS_INVITED = "invited"
STATUS_ACTIVE = "active"
STATUS_DROPPED = "dropped"
STATUS_COMPLETED = "completed"

FINISHED_STATUSES = frozenset({STATUS_COMPLETED, STATUS_DROPPED})

QUEST_FIELDS = (
    "quest_name",
    "description",
    "duration",
    "checkin_frequency",
    "time",
    "icon_id",
    "start_date",
    "end_date",
    "category_id",
    "status",
)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_quest(db: AsyncSession, quest_id: int) -> Quest | None:
    """Get a quest by ID."""
    result = await db.execute(select(Quest).where(Quest.id == quest_id))
    return result.scalar_one_or_none()


async def list_quests(db: AsyncSession) -> list[Quest]:
    """List every quest, newest first."""
    result = await db.execute(select(Quest).order_by(Quest.created_at.desc(), Quest.id.desc()))
    return list(result.scalars().all())


async def get_membership(db: AsyncSession, quest_id: int, user_id: int) -> UserQuest | None:
    """Get the membership row of a user in a quest (if any)."""
    result = await db.execute(
        select(UserQuest)
        .where(UserQuest.quest_id == quest_id, UserQuest.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_quest_owner(db: AsyncSession, quest_id: int) -> User:
    """Return the user holding the owner row of a quest."""
    result = await db.execute(
        select(User)
        .join(UserQuest, UserQuest.user_id == User.id)
        .where(UserQuest.quest_id == quest_id, UserQuest.role == ROLE_OWNER)
    )
    owner = result.scalar_one_or_none()
    if owner is None:
        raise NotFoundError("Quest not found")
    return owner


async def get_quest_members(db: AsyncSession, quest_id: int) -> list[tuple[UserQuest, User]]:
    """Get every membership row of a quest with user info, in join order."""
    await _require_quest(db, quest_id)
    result = await db.execute(
        select(UserQuest, User)
        .join(User, UserQuest.user_id == User.id)
        .where(UserQuest.quest_id == quest_id)
        .order_by(UserQuest.joined_at.asc(), UserQuest.id.asc())
    )
    return [(row.UserQuest, row.User) for row in result]


async def _require_quest(db: AsyncSession, quest_id: int) -> Quest:
    quest = await get_quest(db, quest_id)
    if quest is None:
        raise NotFoundError("Quest not found")
    return quest


async def _require_owner(db: AsyncSession, quest_id: int, user_id: int) -> Quest:
    """Load the quest and ensure ``user_id`` holds its owner row."""
    quest = await _require_quest(db, quest_id)
    membership = await get_membership(db, quest_id, user_id)
    if membership is None or membership.role != ROLE_OWNER:
        raise ForbiddenError("Only the quest owner can do this")
    return quest


# ---------------------------------------------------------------------------
# Quest lifecycle
# ---------------------------------------------------------------------------


async def _add_membership(
    db: AsyncSession,
    quest_id: int,
    user_id: int,
    role: str,
    status: str,
) -> UserQuest:
    now = datetime.now(timezone.utc)
    membership = UserQuest(
        quest_id=quest_id,
        user_id=user_id,
        role=role,
        status=status,
        joined_at=now,
        updated_at=now,
    )
    db.add(membership)
    await db.flush()
    return membership


async def create_quest(db: AsyncSession, owner_id: int, fields: dict[str, Any]) -> Quest:
    """
    Create a quest and its owner membership row in one unit of work.

    The session is committed on success. If any step fails, both inserts are
    rolled back and the error propagates.
    """
    async with unit_of_work(db):
        now = datetime.now(timezone.utc)
        values = {k: v for k, v in fields.items() if k in QUEST_FIELDS}
        values.setdefault("status", STATUS_ACTIVE)
        quest = Quest(**values, created_by=owner_id, created_at=now, updated_at=now)
        db.add(quest)
        await db.flush()
        await _add_membership(db, quest.id, owner_id, ROLE_OWNER, STATUS_ACTIVE)

    logger.info("quest_created", quest_id=quest.id, owner_id=owner_id)
    return quest


async def update_quest(
    db: AsyncSession,
    quest_id: int,
    user_id: int,
    fields: dict[str, Any],
) -> Quest:
    """Update quest fields (owner only). Keys outside the quest's own columns are ignored."""
    quest = await _require_owner(db, quest_id, user_id)
    for key, value in fields.items():
        if key not in QUEST_FIELDS:
            continue
        if value is None and key in ("quest_name", "status"):
            continue
        setattr(quest, key, value)
    quest.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return quest


async def delete_quest(db: AsyncSession, quest_id: int, user_id: int) -> None:
    """Delete a quest with its memberships and chat history (owner only)."""
    await _require_owner(db, quest_id, user_id)
    await db.execute(delete(QuestMessage).where(QuestMessage.quest_id == quest_id))
    await db.execute(delete(UserQuest).where(UserQuest.quest_id == quest_id))
    await db.execute(delete(Quest).where(Quest.id == quest_id))
    await db.flush()
    logger.info("quest_deleted", quest_id=quest_id, owner_id=user_id)


# ---------------------------------------------------------------------------
# Membership transitions
# ---------------------------------------------------------------------------


async def _transition(
    db: AsyncSession,
    quest_id: int,
    user_id: int,
    from_status: str,
    to_status: str,
) -> UserQuest:
    """Move a row from ``from_status`` to ``to_status`` in a single conditional UPDATE."""
    result = await db.execute(
        update(UserQuest)
        .where(
            UserQuest.quest_id == quest_id,
            UserQuest.user_id == user_id,
            UserQuest.status == from_status,
        )
        .values(status=to_status, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:  # type: ignore[attr-defined]
        raise NotFoundError(f"No {from_status} membership found")
    membership = await get_membership(db, quest_id, user_id)
    if membership is None:
        raise NotFoundError(f"No {from_status} membership found")
    return membership


async def _delete_in_status(db: AsyncSession, quest_id: int, user_id: int, status: str) -> None:
    result = await db.execute(
        delete(UserQuest)
        .where(
            UserQuest.quest_id == quest_id,
            UserQuest.user_id == user_id,
            UserQuest.status == status,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:  # type: ignore[attr-defined]
        raise NotFoundError(f"No {status} membership found")
    await db.flush()


async def _insert_participant(db: AsyncSession, quest_id: int, user_id: int, status: str) -> UserQuest:
    if await get_membership(db, quest_id, user_id) is not None:
        raise ConflictError("User is already a member of this quest or has a pending request/invite")
    try:
        return await _add_membership(db, quest_id, user_id, ROLE_PARTICIPANT, status)
    except IntegrityError as e:
        # A concurrent request inserted the same (user, quest) row first.
        await db.rollback()
        raise ConflictError("User is already a member of this quest or has a pending request/invite") from e


async def request_to_join(db: AsyncSession, quest_id: int, user_id: int) -> UserQuest:
    """A non-member asks to join: creates a pending participant row."""
    await _require_quest(db, quest_id)
    membership = await _insert_participant(db, quest_id, user_id, STATUS_PENDING)
    logger.info("quest_join_requested", quest_id=quest_id, user_id=user_id)
    return membership


async def approve_request(db: AsyncSession, quest_id: int, owner_id: int, user_id: int) -> UserQuest:
    """Owner approves a pending request: pending -> active."""
    await _require_owner(db, quest_id, owner_id)
    membership = await _transition(db, quest_id, user_id, STATUS_PENDING, STATUS_ACTIVE)
    logger.info("quest_request_approved", quest_id=quest_id, user_id=user_id, owner_id=owner_id)
    return membership


async def reject_request(db: AsyncSession, quest_id: int, owner_id: int, user_id: int) -> None:
    """Owner rejects a pending request: the row is deleted."""
    await _require_owner(db, quest_id, owner_id)
    await _delete_in_status(db, quest_id, user_id, STATUS_PENDING)
    logger.info("quest_request_rejected", quest_id=quest_id, user_id=user_id, owner_id=owner_id)


async def invite(db: AsyncSession, quest_id: int, sender_id: int, receiver_id: int) -> UserQuest:
    """An owner or active participant invites another user: creates an invited row."""
    await _require_quest(db, quest_id)
    sender = await get_membership(db, quest_id, sender_id)
    if (
        sender is None
        or sender.status != STATUS_ACTIVE
        or sender.role not in (ROLE_OWNER, ROLE_PARTICIPANT)
    ):
        raise ForbiddenError("Only active members of the quest can invite")

    receiver = await db.execute(select(User.id).where(User.id == receiver_id))
    if receiver.scalar_one_or_none() is None:
        raise NotFoundError("User not found")

    membership = await _insert_participant(db, quest_id, receiver_id, STATUS_INVITED)
    logger.info("quest_invite_sent", quest_id=quest_id, sender_id=sender_id, receiver_id=receiver_id)
    return membership


async def accept_invite(db: AsyncSession, quest_id: int, user_id: int) -> UserQuest:
    """The invitee accepts: invited -> active."""
    membership = await _transition(db, quest_id, user_id, STATUS_INVITED, STATUS_ACTIVE)
    logger.info("quest_invite_accepted", quest_id=quest_id, user_id=user_id)
    return membership


async def decline_invite(db: AsyncSession, quest_id: int, user_id: int) -> None:
    """The invitee declines: the invited row is deleted."""
    await _delete_in_status(db, quest_id, user_id, STATUS_INVITED)
    logger.info("quest_invite_declined", quest_id=quest_id, user_id=user_id)


async def remove_member(db: AsyncSession, quest_id: int, owner_id: int, user_id: int) -> None:
    """Owner removes a participant (whatever its status)."""
    await _require_owner(db, quest_id, owner_id)
    if owner_id == user_id:
        raise ConflictError("The owner cannot be removed; delete the quest instead")

    result = await db.execute(
        delete(UserQuest)
        .where(
            UserQuest.quest_id == quest_id,
            UserQuest.user_id == user_id,
            UserQuest.role == ROLE_PARTICIPANT,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:  # type: ignore[attr-defined]
        raise NotFoundError("User is not a member of this quest")
    await db.flush()
    logger.info("quest_member_removed", quest_id=quest_id, user_id=user_id, owner_id=owner_id)


async def leave_quest(db: AsyncSession, quest_id: int, user_id: int) -> None:
    """A participant leaves the quest: their row is deleted."""
    membership = await get_membership(db, quest_id, user_id)
    if membership is None:
        raise NotFoundError("You are not a member of this quest")
    if membership.role == ROLE_OWNER:
        raise ConflictError("The owner cannot leave; delete the quest instead")

    await db.delete(membership)
    await db.flush()
    logger.info("quest_left", quest_id=quest_id, user_id=user_id)


async def finish_membership(db: AsyncSession, quest_id: int, user_id: int, status: str) -> UserQuest:
    """An active member marks their own membership completed or dropped."""
    if status not in FINISHED_STATUSES:
        msg = f"Status must be one of {sorted(FINISHED_STATUSES)}"
        raise ValueError(msg)
    membership = await _transition(db, quest_id, user_id, STATUS_ACTIVE, status)
    logger.info("quest_membership_finished", quest_id=quest_id, user_id=user_id, status=status)
    return membership
