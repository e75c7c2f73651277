from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Ticket service
    api_base_url: str = "http://localhost:8080/api/ticketservice"
    http_timeout_seconds: float = 10.0

    # Ticket view
    page_size: int = 10
    view_state_namespace: str = "departmentTicketFilters"
    state_file: str = "dashboard_state.json"

    # Auto-refresh
    auto_refresh_enabled: bool = True
    auto_refresh_interval_ms: int = 60_000
    countdown_tick_seconds: float = 1.0

    # Accuracy series
    forecast_horizon_days: int = 7
    smoothing_window_days: int = 7

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
