from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="ripply", validation_alias="APP_NAME")
    app_env: str = Field(default="dev", validation_alias="APP_ENV")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    database_url: str = Field(validation_alias="DATABASE_URL")
    redis_url: str = Field(validation_alias="REDIS_URL")

    jwt_secret: str = Field(default="change-me", validation_alias="JWT_SECRET")
    jwt_audience: str | None = Field(default=None, validation_alias="JWT_AUDIENCE")

    feed_original_ratio: float = Field(default=0.6, validation_alias="FEED_ORIGINAL_RATIO")
    feed_shared_ratio: float = Field(default=0.4, validation_alias="FEED_SHARED_RATIO")
    feed_slot_cycle: int = Field(default=5, validation_alias="FEED_SLOT_CYCLE")
    feed_original_slots: int = Field(default=3, validation_alias="FEED_ORIGINAL_SLOTS")
    feed_fetch_multiplier: int = Field(default=2, validation_alias="FEED_FETCH_MULTIPLIER")

    discovery_base_score: float = Field(default=1.0, validation_alias="DISCOVERY_BASE_SCORE")
    discovery_tag_match_weight: float = Field(default=2.0, validation_alias="DISCOVERY_TAG_MATCH_WEIGHT")
    discovery_liked_creator_boost: float = Field(default=3.0, validation_alias="DISCOVERY_LIKED_CREATOR_BOOST")
    discovery_like_weight: float = Field(default=0.3, validation_alias="DISCOVERY_LIKE_WEIGHT")
    discovery_comment_weight: float = Field(default=0.5, validation_alias="DISCOVERY_COMMENT_WEIGHT")
    discovery_play_weight: float = Field(default=0.1, validation_alias="DISCOVERY_PLAY_WEIGHT")
    discovery_user_post_weight: float = Field(default=2.0, validation_alias="DISCOVERY_USER_POST_WEIGHT")
    discovery_verified_boost: float = Field(default=10.0, validation_alias="DISCOVERY_VERIFIED_BOOST")
    discovery_post_candidate_cap: int = Field(default=100, validation_alias="DISCOVERY_POST_CANDIDATE_CAP")
    discovery_user_candidate_limit: int = Field(default=50, validation_alias="DISCOVERY_USER_CANDIDATE_LIMIT")
    discovery_liked_tag_sample: int = Field(default=50, validation_alias="DISCOVERY_LIKED_TAG_SAMPLE")

    rate_limit_requests: int = Field(default=100, validation_alias="RATE_LIMIT_REQUESTS")
    rate_limit_window_seconds: int = Field(default=900, validation_alias="RATE_LIMIT_WINDOW_SECONDS")


settings = Settings()
PUBLIC_FEED_SORTS = {"newest", "oldest"}
