from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Resolved permission cache
    permission_cache_enabled: bool = True
    permission_cache_ttl_seconds: int = 30  # matches the client refetch interval
    permission_cache_prefix: str = "perms"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
