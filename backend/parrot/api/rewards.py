import logging

from fastapi import APIRouter, Depends

from parrot.auth.dependencies import get_current_user, get_reward_registry
from parrot.models.rewards import DiaryRewardRequest, RewardNotificationResponse
from parrot.models.session import SessionUser
from parrot.services.reward_notifier import RewardNotifierRegistry
from parrot.services.reward_service import build_diary_reward

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/rewards",
    tags=["rewards"],
)


@router.post(
    "/diary-entry",
    response_model=RewardNotificationResponse,
    summary="Grant the reward for a saved diary entry",
    description="Calculates XP, tickets and level up for a new diary entry and shows the reward notification.",
    responses={
        401: {"description": "Unauthorized - Invalid or missing authentication token"},
    },
)
async def reward_diary_entry(
    body: DiaryRewardRequest,
    current_user: SessionUser = Depends(get_current_user),
    registry: RewardNotifierRegistry = Depends(get_reward_registry),
) -> RewardNotificationResponse:
    """Grant the reward for a diary save.

    Only new entries earn a reward; edits return the notification currently on
    display without touching it.
    """
    notifier = registry.for_user(current_user.id)
    if not body.isNewEntry:
        return RewardNotificationResponse(reward=notifier.current)

    event = build_diary_reward(body.totalChars, body.totalXp, body.currentLevel)
    notifier.show_reward(event)
    logger.info("[REWARDS] uid=%s earned xp=%s tickets=%s", current_user.id, event.xp, event.tickets)
    return RewardNotificationResponse(reward=event)


@router.get(
    "/notification",
    response_model=RewardNotificationResponse,
    summary="Get the reward notification on display",
    description="Returns the single reward currently on display, or null once it has expired.",
)
async def get_reward_notification(
    current_user: SessionUser = Depends(get_current_user),
    registry: RewardNotifierRegistry = Depends(get_reward_registry),
) -> RewardNotificationResponse:
    return RewardNotificationResponse(reward=registry.current_for(current_user.id))
