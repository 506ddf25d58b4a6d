import os
from pydantic import BaseModel


class Settings(BaseModel):
    api_key: str = os.getenv("API_KEY", "change-me")

    log_level: str = os.getenv("LOG_LEVEL", "info")

    # Reference size charts (bundled JSON unless overridden)
    size_charts_path: str = os.getenv("SIZE_CHARTS_PATH", os.path.abspath(os.path.join(os.path.dirname(__file__), "data", "size_charts.json")))

    # Optional remote chart service; when set, charts are pulled on start-up and refreshed periodically
    charts_api_base: str | None = os.getenv("CHARTS_API_BASE")
    charts_api_token: str | None = os.getenv("CHARTS_API_TOKEN")
    chart_refresh_seconds: int = int(os.getenv("CHART_REFRESH_SECONDS", "600"))

    # JWT
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret")
    jwt_audience: str | None = os.getenv("JWT_AUDIENCE")
    jwt_issuer: str | None = os.getenv("JWT_ISSUER")
    jwt_ttl_seconds: int = int(os.getenv("JWT_TTL_SECONDS", "3600"))

    # Rate limit (token bucket)
    rate_limit_per_min: int = int(os.getenv("RATE_LIMIT_PER_MIN", "60"))
    rate_limit_burst: int = int(os.getenv("RATE_LIMIT_BURST", "30"))


settings = Settings()
