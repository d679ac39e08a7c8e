from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# =============================================================================
# ECONOMY DEFAULTS
# =============================================================================

# Coin cost of a non-free Mystery Ball pull.
DEFAULT_PULL_COST = 5

# Outcome distribution (empty takes the remainder)
DEFAULT_COLLECTIBLE_PROBABILITY = 0.60
DEFAULT_CURRENCY_PROBABILITY = 0.30

# Inclusive bounds for the coin amount of a currency outcome
DEFAULT_CURRENCY_REWARD_MIN = 1
DEFAULT_CURRENCY_REWARD_MAX = 5

# Hard ceiling on pulls per batch request
MAX_BATCH_CEILING = 10

# Number of history entries shown when no limit is requested
DEFAULT_HISTORY_DISPLAY_LIMIT = 10

# Bounded transparent retries for a single attempt that lost a race
DEFAULT_MAX_ATTEMPT_RETRIES = 3


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "ClassCoins"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/classcoins"

    pull_cost: int = DEFAULT_PULL_COST
    collectible_probability: float = DEFAULT_COLLECTIBLE_PROBABILITY
    currency_probability: float = DEFAULT_CURRENCY_PROBABILITY
    currency_reward_min: int = DEFAULT_CURRENCY_REWARD_MIN
    currency_reward_max: int = DEFAULT_CURRENCY_REWARD_MAX
    batch_ceiling: int = MAX_BATCH_CEILING

    # Free daily attempt resets at midnight in this IANA timezone
    timezone: str = "UTC"

    history_display_limit: int = DEFAULT_HISTORY_DISPLAY_LIMIT
    max_attempt_retries: int = DEFAULT_MAX_ATTEMPT_RETRIES

    @model_validator(mode="after")
    def _check_economy(self) -> "Settings":
        if self.pull_cost < 1:
            raise ValueError("pull_cost must be a positive integer")
        for name in ("collectible_probability", "currency_probability"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.collectible_probability + self.currency_probability > 1.0:
            raise ValueError("collectible_probability + currency_probability must not exceed 1")
        if self.currency_reward_min < 1 or self.currency_reward_min > self.currency_reward_max:
            raise ValueError("currency reward range must satisfy 1 <= min <= max")
        if not 1 <= self.batch_ceiling <= MAX_BATCH_CEILING:
            raise ValueError(f"batch_ceiling must be within [1, {MAX_BATCH_CEILING}]")
        if self.max_attempt_retries < 0:
            raise ValueError("max_attempt_retries must not be negative")
        return self


settings = Settings()
