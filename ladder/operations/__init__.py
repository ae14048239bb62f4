"""
Operations layer.

Business workflows composed over the database layer. Each operation runs in
its own transaction unless the caller passes a session to join:

- ChallengeOperations: challenge creation, responses, expiry and purging
- MatchOperations: result submission, validation and settlement
- PlayerOperations: registration and profile changes
- RankingRecomputer: the four cached ladder positions
"""
