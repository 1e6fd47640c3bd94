"""
Reward Notification Store

Holds at most one reward notification at a time. A new reward replaces the
one on display and restarts the display countdown. The countdown is a single
cancellable timer handle owned by the store: showing a reward cancels the
previous handle and arms the new one in the same synchronous step, so an old
countdown can never clear a newer reward.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from parrot.config import DEFAULT_REWARD_DISPLAY_SECONDS
from parrot.models.rewards import RewardEvent

logger = logging.getLogger(__name__)

RewardListener = Callable[[Optional[RewardEvent]], None]


class RewardNotifier:
    """Single-slot reward store with auto-expiry.

    Args:
        display_seconds: How long a reward stays visible
        scheduler: Anything with ``call_later(delay, callback)`` returning a
            handle with ``cancel()``. Defaults to the running asyncio loop.
        on_idle: Called after a countdown expires while nobody is subscribed
    """

    def __init__(self, display_seconds: float = DEFAULT_REWARD_DISPLAY_SECONDS, scheduler: Any = None,
                 on_idle: Optional[Callable[[], None]] = None):
        self.display_seconds = display_seconds
        self._scheduler = scheduler
        self._on_idle = on_idle
        self._current: Optional[RewardEvent] = None
        self._timer = None
        self._generation = 0
        self._listeners: List[RewardListener] = []

    @property
    def current(self) -> Optional[RewardEvent]:
        return self._current

    @property
    def has_pending_expiry(self) -> bool:
        return self._timer is not None

    @property
    def is_idle(self) -> bool:
        """Nothing on display and nobody subscribed."""
        return self._current is None and not self._listeners

    def show_reward(self, event: RewardEvent) -> None:
        """Display event, replacing whatever is shown, and restart the countdown."""
        scheduler = self._scheduler or asyncio.get_running_loop()

        if self._timer is not None:
            self._timer.cancel()
        self._generation += 1
        generation = self._generation
        self._current = event
        self._timer = scheduler.call_later(self.display_seconds, self._expire, generation)

        logger.info(
            "[REWARDS] Showing reward xp=%s tickets=%s levelUp=%s",
            event.xp, event.tickets, event.levelUp,
        )
        self._notify()

    def clear(self) -> None:
        """Drop the current reward immediately and disarm the countdown."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1
        if self._current is not None:
            self._current = None
            self._notify()

    def subscribe(self, listener: RewardListener) -> Callable[[], None]:
        """Register a listener for every change; returns its unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _expire(self, generation: int) -> None:
        # A countdown only owns the reward it was armed for
        if generation != self._generation:
            return
        self._timer = None
        self._current = None
        logger.debug("[REWARDS] Reward display expired")
        self._notify()
        if self.is_idle and self._on_idle is not None:
            self._on_idle()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._current)
            except Exception:
                logger.exception("[REWARDS] Reward listener failed")


class RewardNotifierRegistry:
    """One RewardNotifier per signed-in user.

    Created on first reward and dropped again once its reward has expired with
    nobody subscribed.
    """

    def __init__(self, display_seconds: float = DEFAULT_REWARD_DISPLAY_SECONDS, scheduler: Any = None):
        self.display_seconds = display_seconds
        self._scheduler = scheduler
        self._notifiers: Dict[str, RewardNotifier] = {}

    def for_user(self, uid: str) -> RewardNotifier:
        notifier = self._notifiers.get(uid)
        if notifier is None:
            notifier = RewardNotifier(
                self.display_seconds,
                scheduler=self._scheduler,
                on_idle=lambda: self._forget_idle(uid, notifier),
            )
            self._notifiers[uid] = notifier
        return notifier

    def current_for(self, uid: str) -> Optional[RewardEvent]:
        """The reward on display for uid, without creating a notifier."""
        notifier = self._notifiers.get(uid)
        return notifier.current if notifier is not None else None

    def __len__(self) -> int:
        return len(self._notifiers)

    def discard(self, uid: str) -> None:
        """Forget a user's notifier, e.g. on sign-out."""
        notifier = self._notifiers.pop(uid, None)
        if notifier is not None:
            notifier.clear()

    def _forget_idle(self, uid: str, notifier: RewardNotifier) -> None:
        if self._notifiers.get(uid) is notifier and notifier.is_idle:
            del self._notifiers[uid]
            logger.debug("[REWARDS] Dropped idle notifier")
