"""Relay configuration — loaded from environment / .env file."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="RELAY_", extra="ignore")

    log_level: str = "INFO"

    # Relay server
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = ["*"]

    # Broker
    history_size: int = 50  # 0 disables replay for late subscribers
    send_timeout: float = 10.0  # per-frame send bound, seconds
    outbox_size: int = 256  # frames queued per session before it is dropped
    greeting: str = "Connected to relay server."

    # Chat client side
    relay_ws_url: str = "ws://127.0.0.1:3000"
    reconnect_delay: float = 5.0
    validate_attempts: int = 3
    validate_retry_delay: float = 1.5
    request_timeout: float = 10.0
    chat_id: str = "python-client-session-001"

    @property
    def relay_http_url(self) -> str:
        # Same origin as the push channel, shown to operators configuring the workflow
        if self.relay_ws_url.startswith("wss://"):
            return "https://" + self.relay_ws_url[len("wss://"):]
        if self.relay_ws_url.startswith("ws://"):
            return "http://" + self.relay_ws_url[len("ws://"):]
        return self.relay_ws_url

    @property
    def webhook_receiver_url(self) -> str:
        return f"{self.relay_http_url.rstrip('/')}/api/webhook-receiver"


settings = Settings()
