"""
Exceptions raised by the ladder engine, each carrying a user-facing message.

Eligibility denials are not exceptions; they come back as a ChallengeDecision.
"""

class LadderError(Exception):
    """Base exception for ladder engine errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class ValidationError(LadderError):
    """Raised for malformed input or references to entities that do not exist."""
    pass

class PlayerNotFoundError(ValidationError):
    """Raised when a player id does not resolve to a player."""
    def __init__(self, player_id: int):
        super().__init__(
            f"Player {player_id} not found",
            "❌ That player is not registered on the ladder."
        )
        self.player_id = player_id

class ChallengeNotFoundError(ValidationError):
    """Raised when a challenge id does not resolve to a challenge."""
    def __init__(self, challenge_id: int):
        super().__init__(
            f"Challenge {challenge_id} not found",
            f"❌ Challenge #{challenge_id} does not exist."
        )
        self.challenge_id = challenge_id

class MatchNotFoundError(ValidationError):
    """Raised when a match id does not resolve to a match."""
    def __init__(self, match_id: int):
        super().__init__(
            f"Match {match_id} not found",
            f"❌ Match #{match_id} does not exist."
        )
        self.match_id = match_id

class DuplicateChallengeError(ValidationError):
    """Raised when a live challenge already exists between the same two players."""
    def __init__(self, challenger_id: int, challenged_id: int):
        super().__init__(
            f"Live challenge already exists between players {challenger_id} and {challenged_id}",
            "❌ There is already an open challenge between you and this player."
        )

class ScoreFormatError(ValidationError):
    """Raised when a reported score string cannot be parsed."""
    def __init__(self, score: str, reason: str):
        super().__init__(
            f"Invalid score '{score}': {reason}",
            f"❌ Invalid score: {reason}"
        )

class ConcurrencyConflict(LadderError):
    """Raised when a transition's source state no longer holds."""
    def __init__(self, entity: str, entity_id: int, current_status: str = None):
        if current_status:
            message = f"{entity} {entity_id} is no longer in the expected state (status: {current_status})"
        else:
            message = f"{entity} {entity_id} is no longer in the expected state"
        super().__init__(
            message,
            f"❌ This {entity.lower()} was already handled. Refresh and try again."
        )
        self.entity = entity
        self.entity_id = entity_id
        self.current_status = current_status

class InvariantViolation(LadderError):
    """Raised when an action would break a ladder rule, such as acting on someone else's behalf."""
    pass
