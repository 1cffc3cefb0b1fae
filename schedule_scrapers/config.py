from pathlib import Path
from typing import List, Optional

from pydantic import Field, AliasChoices, HttpUrl, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionSettings(BaseSettings):
    """Where the persisted session lives and which cookies make it usable."""
    cookies_env_var: str = Field("FB_SESSION_COOKIES", description="Name of the env var holding a JSON cookie blob.")
    cookies_file: Path = Field(Path("data/facebook-cookies.json"), validation_alias=AliasChoices('SESSION_COOKIES_FILE', 'FB_COOKIES_FILE'))
    required_cookies: List[str] = Field(default_factory=lambda: ["xs", "c_user", "datr", "sb"])
    login_email: Optional[str] = Field(None, validation_alias=AliasChoices('SESSION_LOGIN_EMAIL', 'FB_EMAIL'))
    login_password: Optional[SecretStr] = Field(None, validation_alias=AliasChoices('SESSION_LOGIN_PASSWORD', 'FB_PASSWORD'))
    auth_check_url: HttpUrl = Field("https://www.facebook.com/me")
    auth_check_timeout_sec: float = 10.0

    model_config = SettingsConfigDict(
        env_prefix='SESSION_',
        extra='ignore',
        populate_by_name=True
    )


class BrokerSettings(BaseSettings):
    """Interactive credential broker settings."""
    timeout_seconds: float = Field(300.0, gt=0, validation_alias=AliasChoices('BROKER_TIMEOUT_SECONDS', 'CREDENTIAL_TIMEOUT_SECONDS'))
    prompt_message: str = "Login required. Please provide account credentials to continue extraction."

    model_config = SettingsConfigDict(
        env_prefix='BROKER_',
        extra='ignore',
        populate_by_name=True
    )


class BrowserSettings(BaseSettings):
    """Headless browser behaviour for the browser-driven extractor."""
    headless: bool = Field(True, validation_alias=AliasChoices('BROWSER_HEADLESS', 'DEFAULT_HEADLESS_BROWSER'))
    user_agent: str = Field(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
        validation_alias=AliasChoices('BROWSER_USER_AGENT', 'DEFAULT_USER_AGENT')
    )
    viewport_width: int = 1920
    viewport_height: int = 1080
    navigation_timeout_ms: int = 30000
    max_scroll_cycles: int = Field(20, ge=0)
    scroll_wait_ms: int = 3000
    stable_rounds_to_stop: int = Field(3, ge=1)
    min_image_size_px: int = 100
    login_url: HttpUrl = Field("https://www.facebook.com/login")
    capture_screenshot: bool = False

    model_config = SettingsConfigDict(
        env_prefix='BROWSER_',
        extra='ignore',
        populate_by_name=True
    )


class WorkerPoolSettings(BaseSettings):
    """Parallel worker pool settings."""
    max_workers: Optional[int] = Field(None, ge=1, description="Caps parallelism; defaults to os.cpu_count().")
    download_timeout_sec: float = 30.0
    max_download_bytes: int = 50 * 1024 * 1024
    min_delay_ms: int = Field(250, validation_alias=AliasChoices('WORKER_POOL_MIN_DELAY_MS', 'MIN_DELAY_MS'))
    max_delay_ms: int = Field(1500, validation_alias=AliasChoices('WORKER_POOL_MAX_DELAY_MS', 'MAX_DELAY_MS'))

    model_config = SettingsConfigDict(
        env_prefix='WORKER_POOL_',
        extra='ignore',
        populate_by_name=True
    )


class GeminiSettings(BaseSettings):
    """Generative AI service used by the normalizer and enrichment."""
    api_key: Optional[SecretStr] = Field(None, validation_alias=AliasChoices('GEMINI_API_KEY', 'GOOGLE_API_KEY'))
    model: str = Field("gemini-2.5-flash-lite", validation_alias=AliasChoices('GEMINI_MODEL'))
    temperature: float = 0.0
    max_prompt_chars: int = Field(12000, ge=500)
    max_retries: int = Field(4, ge=0)
    initial_backoff_sec: float = 1.5
    backoff_multiplier: float = 2.0
    max_backoff_sec: float = 12.0

    model_config = SettingsConfigDict(
        env_prefix='GEMINI_',
        extra='ignore',
        populate_by_name=True
    )


class GraphApiSettings(BaseSettings):
    """Authenticated API strategy settings."""
    base_url: str = "https://graph.facebook.com/v18.0"
    app_id: Optional[str] = None
    app_secret: Optional[SecretStr] = None
    posts_limit: int = 25
    request_timeout_sec: float = 30.0

    model_config = SettingsConfigDict(
        env_prefix='GRAPH_API_',
        extra='ignore',
        populate_by_name=True
    )


class CoordinatorSettings(BaseSettings):
    """Strategy coordinator settings."""
    strategy_timeout_sec: float = Field(180.0, gt=0)
    strategy_order_file: Optional[Path] = Field(None, description="YAML file overriding the bundled strategy order.")
    meta_request_timeout_sec: float = 30.0

    model_config = SettingsConfigDict(
        env_prefix='COORDINATOR_',
        extra='ignore',
        populate_by_name=True
    )


class EnrichmentSettings(BaseSettings):
    """Optional AI location enrichment."""
    enabled: bool = False
    batch_size: int = Field(5, ge=1)

    model_config = SettingsConfigDict(
        env_prefix='ENRICHMENT_',
        extra='ignore',
        populate_by_name=True
    )


class FileOutputSettings(BaseSettings):
    """Settings for controlling file-based outputs."""
    base_output_directory: Path = Field(Path("output_data"), validation_alias=AliasChoices('FILE_OUTPUT_BASE_OUTPUT_DIRECTORY', 'BASE_OUTPUT_DIRECTORY'))
    enable_json_output: bool = Field(False, validation_alias=AliasChoices('FILE_OUTPUT_ENABLE_JSON_OUTPUT', 'ENABLE_JSON_OUTPUT'))
    log_output_directory: Path = Field(Path("scraper_logs"), validation_alias=AliasChoices('FILE_OUTPUT_LOG_OUTPUT_DIRECTORY', 'LOG_OUTPUT_DIRECTORY'))

    model_config = SettingsConfigDict(
        env_prefix='FILE_OUTPUT_',
        extra='ignore',
        populate_by_name=True
    )


class SentrySettings(BaseSettings):
    """Configuration for Sentry error tracking."""
    dsn: Optional[HttpUrl] = Field(None, validation_alias=AliasChoices('SENTRY_DSN'))
    environment: Optional[str] = Field(None, description="Overrides main app environment for Sentry if needed.")
    traces_sample_rate: float = Field(0.2, ge=0.0, le=1.0)
    enable_performance_monitoring: bool = True

    model_config = SettingsConfigDict(
        env_prefix='SENTRY_',
        extra='ignore',
        populate_by_name=True
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field("development", validation_alias=AliasChoices('APP_ENV', 'ENVIRONMENT'))
    log_level: str = Field("INFO", validation_alias=AliasChoices('APP_LOG_LEVEL', 'LOG_LEVEL'))

    session: SessionSettings = SessionSettings()
    broker: BrokerSettings = BrokerSettings()
    browser: BrowserSettings = BrowserSettings()
    worker_pool: WorkerPoolSettings = WorkerPoolSettings()
    gemini: GeminiSettings = GeminiSettings()
    graph_api: GraphApiSettings = GraphApiSettings()
    coordinator: CoordinatorSettings = CoordinatorSettings()
    enrichment: EnrichmentSettings = EnrichmentSettings()
    file_outputs: FileOutputSettings = FileOutputSettings()
    sentry: SentrySettings = SentrySettings()

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        env_nested_delimiter='__',
        extra='ignore',
        populate_by_name=True
    )


settings = Settings()


def ensure_directories_exist():
    # Call once at application startup.
    if settings.file_outputs.base_output_directory and not settings.file_outputs.base_output_directory.exists():
        settings.file_outputs.base_output_directory.mkdir(parents=True, exist_ok=True)
    if settings.file_outputs.log_output_directory and not settings.file_outputs.log_output_directory.exists():
        settings.file_outputs.log_output_directory.mkdir(parents=True, exist_ok=True)
