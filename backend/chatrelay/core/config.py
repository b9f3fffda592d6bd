from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Chat Relay"
    debug: bool = False

    # Paths
    db_path: Path = Path(__file__).resolve().parent.parent.parent / "chatrelay.db"

    # Upstream completion API (OpenAI-compatible)
    upstream_base_url: str = "https://api.deepseek.com/v1"
    upstream_api_key: str = ""
    upstream_model: str = "deepseek-chat"
    upstream_timeout: float = 120.0
    system_prompt: str = "You are a helpful, friendly assistant. Keep answers concise and accurate."

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_file": str(Path(__file__).resolve().parent.parent.parent / ".env"),
        "env_prefix": "RELAY_",
    }


settings = Settings()
