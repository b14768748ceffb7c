from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Connector Sync"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    database_host: str = "localhost"
    database_port: int = 5432
    database_user: str = "postgres"
    database_password: str = ""
    database_name: str = "connector_sync"
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10

    encryption_key: str = ""

    backend_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:5173"
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    jira_client_id: str = ""
    jira_client_secret: str = ""
    teams_client_id: str = ""
    teams_client_secret: str = ""
    teams_authority_tenant: str = "common"
    servicenow_client_id: str = ""
    servicenow_client_secret: str = ""
    servicenow_tables: str = "incident"

    token_refresh_buffer_seconds: int = 300
    http_timeout_seconds: float = 30.0

    sync_scheduler_enabled: bool = True
    sync_scheduler_tick_seconds: int = 600
    default_sync_interval_minutes: int = 15
    sync_page_size: int = 50
    sync_max_items_per_unit: int = 1000
    sync_max_concurrent: int = 4
    sync_queue_size: int = 100
    sync_shutdown_grace_seconds: int = 30

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def servicenow_table_list(self) -> list[str]:
        return [table.strip() for table in self.servicenow_tables.split(",") if table.strip()]


settings = Settings()
