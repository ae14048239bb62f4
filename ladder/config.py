import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Ladder bot configuration settings"""

    # Discord settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    DISCORD_GUILD_ID = int(os.getenv('DISCORD_GUILD_ID', 0))
    DISCORD_GUILD_IDS = os.getenv('DISCORD_GUILD_IDS', '')  # Comma-separated for multi-guild support
    OWNER_DISCORD_ID = int(os.getenv('OWNER_DISCORD_ID', 0))

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///ladder.db')

    # Bot settings
    COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', '!')
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

    # Logging settings
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'True').lower() == 'true'

    # Player settings
    STARTING_POINTS = int(os.getenv('STARTING_POINTS', 1000))

    # Challenge lifecycle
    CHALLENGE_EXPIRY_HOURS = int(os.getenv('CHALLENGE_EXPIRY_HOURS', 48))
    MATCH_DEADLINE_DAYS = int(os.getenv('MATCH_DEADLINE_DAYS', 7))
    VALIDATION_WINDOW_HOURS = int(os.getenv('VALIDATION_WINDOW_HOURS', 48))
    MAX_ACTIVE_CHALLENGES = int(os.getenv('MAX_ACTIVE_CHALLENGES', 3))

    # Decline throttling
    FREE_MONTHLY_DECLINES = int(os.getenv('FREE_MONTHLY_DECLINES', 2))
    DECLINE_PENALTY_POINTS = int(os.getenv('DECLINE_PENALTY_POINTS', 10))

    # Provisional phase
    PROVISIONAL_MATCH_COUNT = int(os.getenv('PROVISIONAL_MATCH_COUNT', 3))
    PROVISIONAL_MULTIPLIER = float(os.getenv('PROVISIONAL_MULTIPLIER', 1.5))

    # Background task intervals
    SWEEP_INTERVAL_MINUTES = int(os.getenv('SWEEP_INTERVAL_MINUTES', 15))
    RANKING_REFRESH_HOURS = int(os.getenv('RANKING_REFRESH_HOURS', 6))
    STALE_CHALLENGE_RETENTION_DAYS = int(os.getenv('STALE_CHALLENGE_RETENTION_DAYS', 180))

    @classmethod
    def get_guild_ids(cls):
        """Get list of guild IDs for command syncing"""
        if cls.DISCORD_GUILD_IDS:
            try:
                return [int(guild_id.strip()) for guild_id in cls.DISCORD_GUILD_IDS.split(',') if guild_id.strip()]
            except ValueError:
                raise ValueError("DISCORD_GUILD_IDS must be comma-separated integers")
        elif cls.DISCORD_GUILD_ID:
            return [cls.DISCORD_GUILD_ID]
        else:
            # Global sync
            return []

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DISCORD_TOKEN:
            raise ValueError("DISCORD_TOKEN is required")
        if not cls.OWNER_DISCORD_ID:
            raise ValueError("OWNER_DISCORD_ID is required")
        if cls.PROVISIONAL_MULTIPLIER < 1:
            raise ValueError("PROVISIONAL_MULTIPLIER must be at least 1")
        if cls.MAX_ACTIVE_CHALLENGES < 1:
            raise ValueError("MAX_ACTIVE_CHALLENGES must be at least 1")
