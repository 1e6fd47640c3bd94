import math
from typing import Tuple

from parrot.models.rewards import RewardEvent

# 2 XP per character, capped at 300 characters
XP_PER_CHAR = 2
MAX_XP_PER_ENTRY = 600
# One ticket per 100 characters, capped at 5
CHARS_PER_TICKET = 100
MAX_TICKETS_PER_ENTRY = 5


def calculate_xp_reward(total_chars: int) -> int:
    """XP earned for an entry of the given length."""
    return min(max(total_chars, 0) * XP_PER_CHAR, MAX_XP_PER_ENTRY)


def calculate_ticket_reward(total_chars: int) -> int:
    """Gacha tickets earned for an entry of the given length."""
    return min(max(total_chars, 0) // CHARS_PER_TICKET, MAX_TICKETS_PER_ENTRY)


def required_xp_for_level(level: int) -> int:
    """XP needed to clear the given level."""
    return math.floor(1000 * math.pow(level, 1.5))


def check_level_up(total_xp: int, current_level: int) -> Tuple[bool, int]:
    """Work out whether total_xp pushes the user past current_level.

    Levels are cumulative: the XP spent clearing levels 1..current_level-1 is
    subtracted first, then as many further levels are cleared as the remainder
    allows.

    Returns:
        tuple: (should_level_up, new_level). new_level equals current_level
            when no level up happened.
    """
    accumulated_xp = sum(required_xp_for_level(i) for i in range(1, current_level))
    remaining_xp = total_xp - accumulated_xp

    if remaining_xp < required_xp_for_level(current_level):
        return False, current_level

    new_level = current_level
    while remaining_xp >= required_xp_for_level(new_level):
        remaining_xp -= required_xp_for_level(new_level)
        new_level += 1
    return True, new_level


def build_diary_reward(total_chars: int, total_xp_before: int, current_level: int) -> RewardEvent:
    """Build the reward notification for a newly saved diary entry."""
    xp = calculate_xp_reward(total_chars)
    tickets = calculate_ticket_reward(total_chars)
    level_up, new_level = check_level_up(total_xp_before + xp, current_level)
    return RewardEvent(
        xp=xp,
        tickets=tickets,
        levelUp=level_up,
        newLevel=new_level if level_up else None,
    )
