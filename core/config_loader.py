import yaml
import os
from typing import List, Optional, Literal
from pydantic import BaseModel, Field


class DeliveryConfig(BaseModel):
    """Timing of the single-slot delivery channel."""
    default_ttl_seconds: float = 3.5
    show_animation_seconds: float = 0.18
    hide_animation_seconds: float = 0.12


class PreferenceDefaultsConfig(BaseModel):
    """
    Safe defaults used when the settings document is missing a flag
    or cannot be read at all.
    """
    messages: bool = True
    marketplace_activity: bool = True
    reminders: bool = True
    recommendations: bool = False  # Opt-in


class MarketplaceConfig(BaseModel):
    enabled: bool = True
    # Listing fields whose change counts as "new details" on a favorite
    watched_fields: List[str] = Field(
        default_factory=lambda: ['title', 'price', 'condition', 'location', 'description']
    )
    terminal_statuses: List[str] = Field(default_factory=lambda: ['sold'])


class MessagesConfig(BaseModel):
    enabled: bool = True


class RecommendationConfig(BaseModel):
    enabled: bool = True
    feed_page_size: int = 25  # Most recent listings watched
    recency_grace_ms: int = 1000  # Tolerance when comparing postedAt to enablement time


class DraftReminderConfig(BaseModel):
    enabled: bool = True
    remind_after_hours: float = 24.0
    cooldown_hours: float = 12.0
    composer_route: str = "/post-item"  # No reminders while the user is editing
    storage_key_prefix: str = "draft_listing:"


class StorageConfig(BaseModel):
    """Backend for the local key-value store (drafts)."""
    backend: Literal["memory", "sqlite", "redis"] = "memory"
    url: Optional[str] = None  # SQLAlchemy URL or Redis URL depending on backend
    redis_password: Optional[str] = None


class LoggingConfig(BaseModel):
    level: str = "INFO"


class NotificationConfig(BaseModel):
    """
    Configuration for the live activity & notification engine.
    """
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    preference_defaults: PreferenceDefaultsConfig = Field(default_factory=PreferenceDefaultsConfig)
    marketplace: MarketplaceConfig = Field(default_factory=MarketplaceConfig)
    messages: MessagesConfig = Field(default_factory=MessagesConfig)
    recommendations: RecommendationConfig = Field(default_factory=RecommendationConfig)
    draft_reminder: DraftReminderConfig = Field(default_factory=DraftReminderConfig)


class AppConfig(BaseModel):
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: str = "config.yaml") -> AppConfig:
    # If not found at relative path (e.g. running from a subdirectory), try the project root
    if not os.path.exists(config_path):
        base_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(base_dir, "..", "config.yaml")

    data = {}
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}

    # Allow env var override for the draft store URL
    env_store_url = os.environ.get("DRAFT_STORE_URL")
    if env_store_url:
        data.setdefault('storage', {})
        data['storage']['url'] = env_store_url

    # Allow env var override for Redis URL (only meaningful with the redis backend)
    env_redis_url = os.environ.get("REDIS_URL")
    if env_redis_url:
        data.setdefault('storage', {})
        if data['storage'].get('backend') == 'redis' and not env_store_url:
            data['storage']['url'] = env_redis_url

    # Allow env var override for the toast lifetime
    env_toast_ttl = os.environ.get("NOTIFICATION_TOAST_TTL")
    if env_toast_ttl:
        data.setdefault('notifications', {})
        data['notifications'].setdefault('delivery', {})
        data['notifications']['delivery']['default_ttl_seconds'] = float(env_toast_ttl)

    env_log_level = os.environ.get("LOG_LEVEL")
    if env_log_level:
        data.setdefault('logging', {})
        data['logging']['level'] = env_log_level

    return AppConfig(**data)
