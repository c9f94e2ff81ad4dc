from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "QuestPoints"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/questpoints"

    # Points charged per single gacha draw
    gacha_cost: int = 10

    # Upper bound for batch draws (never above MAX_BATCH_HARD_CAP)
    gacha_batch_max: int = 100

    # Draw count used when a batch request omits it
    gacha_batch_default: int = 10

    # Spin requests allowed per client IP per minute
    gacha_spins_per_minute: int = 8

    # Public read requests (rates, catalog, leaderboard, profiles) per client IP per minute
    public_requests_per_minute: int = 60


settings = Settings()


# =============================================================================
# GACHA CONSTANTS
# =============================================================================

# Rarity -> draw weight. Shared by the selector and the rates endpoint.
RARITY_WEIGHTS: dict[str, int] = {
    "common": 60,
    "rare": 30,
    "epic": 9,
    "legendary": 1,
}

# Batch draws are never larger than this, whatever the settings say
MAX_BATCH_HARD_CAP = 100

# Draw history page size
HISTORY_PAGE_SIZE = 50

# Achievement granted on a user's first draw
FIRST_DRAW_ACHIEVEMENT = "first_gacha"
