"""Feature flag management."""

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from .settings import Settings


class FeatureFlags:
    """Feature flag management system."""

    def __init__(self, settings: "Settings"):
        """Initialize with settings."""
        self.settings = settings

    @property
    def api_server_enabled(self) -> bool:
        """Check if the webhook server should run."""
        return self.settings.enable_api_server

    @property
    def scheduler_enabled(self) -> bool:
        """Check if scheduled actions should run."""
        return self.settings.enable_scheduler

    @property
    def instruction_executor_enabled(self) -> bool:
        """Check if an instruction executor endpoint is configured."""
        return bool(self.settings.instruction_executor_url)

    @property
    def telegram_notifications_enabled(self) -> bool:
        """Check if notifications can be delivered through Telegram."""
        return self.settings.telegram_bot_token is not None

    def get_enabled_features(self) -> List[str]:
        """Get list of enabled features."""
        features = []
        if self.api_server_enabled:
            features.append("api_server")
        if self.scheduler_enabled:
            features.append("scheduler")
        if self.instruction_executor_enabled:
            features.append("instruction_executor")
        if self.telegram_notifications_enabled:
            features.append("telegram_notifications")
        return features
