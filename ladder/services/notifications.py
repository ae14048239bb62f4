"""
Fire-and-forget notifications for ladder transitions.

Delivery is delegated to a NotificationDispatcher. NotificationService never
lets a delivery failure escape: the transition that triggered it has already
committed and must stay committed.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ladder.database.models import Challenge, Match, Player
from ladder.utils.ranking import RankingUtility
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class NotificationType(Enum):
    CHALLENGE_RECEIVED = "challenge_received"
    CHALLENGE_ACCEPTED = "challenge_accepted"
    CHALLENGE_DECLINED = "challenge_declined"
    CHALLENGE_EXPIRED = "challenge_expired"
    RESULT_SUBMITTED = "result_submitted"
    RESULT_VALIDATED = "result_validated"
    RESULT_DISPUTED = "result_disputed"
    POINTS_CHANGED = "points_changed"


@dataclass(frozen=True)
class Notification:
    type: NotificationType
    recipient_id: int
    title: str
    message: str
    sender_id: Optional[int] = None
    challenge_id: Optional[int] = None
    match_id: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher:
    """Delivery backend. Implementations may raise; the service absorbs it."""

    async def send(self, notification: Notification) -> None:
        raise NotImplementedError


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes notifications to the log; the default when no delivery channel is wired."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            f"[{notification.type.value}] to player {notification.recipient_id}: "
            f"{notification.title} - {notification.message}"
        )


class MemoryNotificationDispatcher(NotificationDispatcher):
    """Keeps notifications in a list, for inspection."""

    def __init__(self):
        self.sent: List[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    def of_type(self, notification_type: NotificationType) -> List[Notification]:
        return [n for n in self.sent if n.type == notification_type]


class NotificationService:
    """Builds ladder notifications and hands them to the dispatcher."""

    def __init__(self, dispatcher: Optional[NotificationDispatcher] = None):
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.logger = logger

    async def notify(self, notification: Notification) -> bool:
        """Send one notification. Returns False if delivery failed."""
        try:
            await self.dispatcher.send(notification)
            return True
        except Exception as e:
            self.logger.warning(
                f"Failed to deliver {notification.type.value} notification "
                f"to player {notification.recipient_id}: {e}",
                exc_info=True
            )
            return False

    async def challenge_received(self, challenge: Challenge, challenger: Player) -> bool:
        return await self.notify(Notification(
            type=NotificationType.CHALLENGE_RECEIVED,
            recipient_id=challenge.challenged_id,
            sender_id=challenger.id,
            challenge_id=challenge.id,
            title="New challenge",
            message=f"{challenger.name} challenged you. Respond before {challenge.expires_at:%Y-%m-%d %H:%M} UTC.",
            data={'message': challenge.message} if challenge.message else {},
        ))

    async def challenge_accepted(self, challenge: Challenge, responder: Player) -> bool:
        return await self.notify(Notification(
            type=NotificationType.CHALLENGE_ACCEPTED,
            recipient_id=challenge.challenger_id,
            sender_id=responder.id,
            challenge_id=challenge.id,
            title="Challenge accepted",
            message=f"{responder.name} accepted your challenge. Play by {challenge.match_deadline:%Y-%m-%d}.",
        ))

    async def challenge_declined(self, challenge: Challenge, responder: Player) -> bool:
        return await self.notify(Notification(
            type=NotificationType.CHALLENGE_DECLINED,
            recipient_id=challenge.challenger_id,
            sender_id=responder.id,
            challenge_id=challenge.id,
            title="Challenge declined",
            message=f"{responder.name} declined your challenge.",
        ))

    async def challenge_expired(self, challenge: Challenge) -> bool:
        return await self.notify(Notification(
            type=NotificationType.CHALLENGE_EXPIRED,
            recipient_id=challenge.challenger_id,
            challenge_id=challenge.id,
            title="Challenge expired",
            message=f"Challenge #{challenge.id} expired without a response.",
        ))

    async def result_submitted(self, match: Match, reporter: Player, recipient_id: int) -> bool:
        return await self.notify(Notification(
            type=NotificationType.RESULT_SUBMITTED,
            recipient_id=recipient_id,
            sender_id=reporter.id,
            challenge_id=match.challenge_id,
            match_id=match.id,
            title="Result reported",
            message=(
                f"{reporter.name} reported {match.score}. "
                f"It will be validated automatically after {match.validation_deadline:%Y-%m-%d %H:%M} UTC."
            ),
        ))

    async def result_validated(self, match: Match, player_id: int, points_change: int) -> bool:
        how = "automatically" if match.auto_validated else "by your opponent"
        return await self.notify(Notification(
            type=NotificationType.RESULT_VALIDATED,
            recipient_id=player_id,
            challenge_id=match.challenge_id,
            match_id=match.id,
            title="Result validated",
            message=(
                f"Match #{match.id} ({match.score}) was validated {how}. "
                f"Points: {RankingUtility.format_points_change(points_change)}."
            ),
            data={'points_change': points_change},
        ))

    async def result_disputed(self, match: Match, disputer: Player) -> bool:
        return await self.notify(Notification(
            type=NotificationType.RESULT_DISPUTED,
            recipient_id=match.winner_id,
            sender_id=disputer.id,
            challenge_id=match.challenge_id,
            match_id=match.id,
            title="Result disputed",
            message=f"{disputer.name} disputed match #{match.id}: {match.dispute_reason}",
        ))

    async def points_changed(self, player_id: int, points_change: int, reason: str) -> bool:
        return await self.notify(Notification(
            type=NotificationType.POINTS_CHANGED,
            recipient_id=player_id,
            title="Points changed",
            message=f"{RankingUtility.format_points_change(points_change)} points: {reason}",
            data={'points_change': points_change},
        ))
