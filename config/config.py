"""
Configuration for the rental core.
Deployment-wide business settings and runtime limits, in a type-safe dataclass.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from utils.env import env_value, load_project_dotenv


@dataclass
class MarketplaceConfig:
    platform_commission_percent: Decimal = Decimal("10")
    min_lead_time: timedelta = field(default_factory=timedelta)  # 0: start just can't be in the past
    cancellation_window: timedelta = field(default_factory=timedelta)  # 0: cancel any time before pickup
    suggestion_limit: int = 3
    suggestion_horizon_days: int = 30
    max_commit_attempts: int = 3
    lock_timeout_seconds: float = 5.0
    availability_cache_ttl_seconds: float = 30.0
    redis_url: str | None = None
    log_level: str = "INFO"

    def __post_init__(self):
        if not Decimal("0") <= self.platform_commission_percent <= Decimal("100"):
            raise ValueError("platform_commission_percent must be between 0 and 100")
        if self.min_lead_time < timedelta(0):
            raise ValueError("min_lead_time cannot be negative")
        if self.cancellation_window < timedelta(0):
            raise ValueError("cancellation_window cannot be negative")
        if self.suggestion_limit < 0 or self.suggestion_horizon_days < 0:
            raise ValueError("suggestion settings cannot be negative")
        if self.max_commit_attempts < 1:
            raise ValueError("max_commit_attempts must be at least 1")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")

    @classmethod
    def from_env(cls) -> "MarketplaceConfig":
        """Build a config from environment variables (and the project `.env`)."""
        load_project_dotenv()
        kwargs = {}

        commission = env_value("PLATFORM_COMMISSION_PERCENT")
        if commission is not None:
            try:
                kwargs["platform_commission_percent"] = Decimal(commission)
            except InvalidOperation:
                raise ValueError(f"Invalid PLATFORM_COMMISSION_PERCENT: {commission!r}") from None

        lead_hours = env_value("MIN_LEAD_TIME_HOURS")
        if lead_hours is not None:
            kwargs["min_lead_time"] = timedelta(hours=float(lead_hours))
        window_hours = env_value("CANCELLATION_WINDOW_HOURS")
        if window_hours is not None:
            kwargs["cancellation_window"] = timedelta(hours=float(window_hours))

        for env_name, attr, cast in (
            ("SUGGESTION_LIMIT", "suggestion_limit", int),
            ("SUGGESTION_HORIZON_DAYS", "suggestion_horizon_days", int),
            ("MAX_COMMIT_ATTEMPTS", "max_commit_attempts", int),
            ("LOCK_TIMEOUT_SECONDS", "lock_timeout_seconds", float),
            ("AVAILABILITY_CACHE_TTL_SECONDS", "availability_cache_ttl_seconds", float),
        ):
            raw = env_value(env_name)
            if raw is not None:
                kwargs[attr] = cast(raw)

        redis_url = env_value("REDIS_URL")
        if redis_url is not None:
            kwargs["redis_url"] = redis_url
        log_level = env_value("LOG_LEVEL")
        if log_level is not None:
            kwargs["log_level"] = log_level.upper()

        return cls(**kwargs)


# Example usage:
# config = MarketplaceConfig.from_env()
# calculator = PricingCalculator(commission_percent=config.platform_commission_percent)
