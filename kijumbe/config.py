from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./kijumbe.db"
    log_level: str = "INFO"

    greenapi_api_url: str = "https://api.green-api.com"
    greenapi_id_instance: str = ""
    greenapi_api_token_instance: str = ""
    greenapi_webhook_url: str = ""
    greenapi_webhook_secret: str = ""

    # Outbound pacing, in milliseconds like the gateway's own settings
    greenapi_queue_delay: int = 2000
    greenapi_max_retry_attempts: int = 3
    greenapi_message_timeout: int = 10000
    greenapi_rate_limit_per_minute: int = 30

    bot_enabled: bool = True
    poll_interval_seconds: float = 1.0
    dispatch_interval_seconds: float = 0.5
    session_timeout_minutes: int = 30
    session_sweep_interval_seconds: float = 300.0
    response_cache_subjects: list[str] = []

    admin_token: str = ""
    alert_bot_token: str = ""
    alert_chat_id: str = ""

    support_phone: str = "+255738071080"
    support_email: str = "support@kijumbe.co.tz"
    support_website: str = "www.kijumbe.co.tz"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def greenapi_configured(self) -> bool:
        return bool(self.greenapi_id_instance and self.greenapi_api_token_instance)


settings = Settings()
