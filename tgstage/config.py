# tgstage/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    log_json: bool | None = None  # None = JSON in prod, console elsewhere

    # Telegram
    telegram_bot_token: str | None = None  # Bot token from @BotFather
    telegram_api_base: str = "https://api.telegram.org"
    telegram_mode: Literal["polling", "webhook"] = "polling"
    telegram_poll_timeout: int = 30  # getUpdates long-poll timeout (seconds)
    telegram_poll_max_backoff: int = 30  # seconds, cap for exponential backoff on errors
    telegram_webhook_url: str | None = None  # Public HTTPS URL Telegram posts Updates to
    telegram_webhook_secret: str | None = None  # X-Telegram-Bot-Api-Secret-Token

    # Stages
    stage_history_enabled: bool = True  # Default for Stage(history=None)
    stage_group_length: int = 8  # Length of random subscription group names

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def use_json_logs(self) -> bool:
        if self.log_json is None:
            return self.is_production
        return self.log_json

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []

        required_fields = [
            ("telegram_bot_token", self.telegram_bot_token),
        ]
        if self.telegram_mode == "webhook":
            required_fields.extend([
                ("telegram_webhook_url", self.telegram_webhook_url),
                ("telegram_webhook_secret", self.telegram_webhook_secret),
            ])

        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if not s.telegram_bot_token:
        warnings.append("telegram_bot_token is missing (the client cannot reach the Bot API).")

    if s.telegram_mode == "webhook":
        if not s.telegram_webhook_url:
            warnings.append("telegram_mode=webhook but telegram_webhook_url is not set.")
        if not s.telegram_webhook_secret:
            warnings.append(
                "telegram_mode=webhook but telegram_webhook_secret is not set "
                "(anyone who knows the URL can inject updates)."
            )

    if s.telegram_poll_timeout <= 0:
        warnings.append("telegram_poll_timeout<=0 turns long polling into busy polling.")

    if s.stage_group_length < 4:
        warnings.append("stage_group_length<4 makes subscription group collisions likely.")

    if s.is_production and s.log_level.upper() == "DEBUG":
        warnings.append("prod: log_level=DEBUG logs every filtered update.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    # Imported here so config stays importable before logging is configured.
    from tgstage.infra.logging_config import get_logger
    logger = get_logger(__name__)
    for msg in warn_on_risky_config(s):
        logger.warning(f"[config] {msg}")


settings = Settings()
