# ------------------------------ IMPORTS ------------------------------
import os
import logging
from typing import List
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()

# ------------------------------ TIMEOUTS (ms) ------------------------------
TIMEOUT_DEFAULT = int(os.getenv("TIMEOUT_DEFAULT", "15000"))
TIMEOUT_NAVIGATION = int(os.getenv("TIMEOUT_NAVIGATION", "20000"))
TIMEOUT_PAGE_LOAD = int(os.getenv("TIMEOUT_PAGE_LOAD", "30000"))
TIMEOUT_STEP = int(os.getenv("TIMEOUT_STEP", "8000"))
TIMEOUT_QUICK_CHECK = int(os.getenv("TIMEOUT_QUICK_CHECK", "3000"))
TIMEOUT_LOGIN_SUBMIT = int(os.getenv("TIMEOUT_LOGIN_SUBMIT", "10000"))
TIMEOUT_SUBMIT = int(os.getenv("TIMEOUT_SUBMIT", "10000"))
TIMEOUT_MASSIVE_PROCESSING = int(os.getenv("TIMEOUT_MASSIVE_PROCESSING", "60000"))

DELAY_POLL_INTERVAL = int(os.getenv("DELAY_POLL_INTERVAL", "100"))
DELAY_LOGIN_RETRY = int(os.getenv("DELAY_LOGIN_RETRY", "1000"))

# ------------------------------ CONFIGURATION CLASSES ------------------------------
@dataclass
class DatabaseConfig:
    """Database configuration."""
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./shalom_sessions.db")
    pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

@dataclass
class BrowserConfig:
    """Shared browser engine configuration."""
    headless: bool = os.getenv("SCRAPING_HEADLESS", "true").lower() == "true"
    user_agent: str = os.getenv("SCRAPING_USER_AGENT", "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36")
    block_resources: bool = os.getenv("BLOCK_RESOURCES", "true").lower() == "true"
    default_timeout: int = TIMEOUT_DEFAULT
    navigation_timeout: int = TIMEOUT_NAVIGATION

@dataclass
class SiteConfig:
    """External site configuration."""
    base_url: str = os.getenv("SHALOM_BASE_URL", "https://pro.shalom.pe")
    login_marker: str = os.getenv("SHALOM_LOGIN_MARKER", "login")

@dataclass
class ConcurrencyConfig:
    """Per-session locking and global throughput limits."""
    max_concurrent_operations: int = int(os.getenv("MAX_CONCURRENT_OPERATIONS", "5"))
    session_lock_timeout: float = float(os.getenv("SESSION_LOCK_TIMEOUT", "120"))
    massive_rate_limit: int = int(os.getenv("MASSIVE_RATE_LIMIT", "10"))
    massive_rate_period: float = float(os.getenv("MASSIVE_RATE_PERIOD", "1"))
    shutdown_drain_timeout: float = float(os.getenv("SHUTDOWN_DRAIN_TIMEOUT", "30"))

@dataclass
class WorkflowConfig:
    """Timeouts and retry policy for site workflows (milliseconds)."""
    login_retries: int = int(os.getenv("LOGIN_RETRIES", "3"))
    login_retry_delay: int = DELAY_LOGIN_RETRY
    login_submit_timeout: int = TIMEOUT_LOGIN_SUBMIT
    page_load_timeout: int = TIMEOUT_PAGE_LOAD
    step_timeout: int = TIMEOUT_STEP
    quick_check_timeout: int = TIMEOUT_QUICK_CHECK
    submit_timeout: int = TIMEOUT_SUBMIT
    massive_processing_timeout: int = TIMEOUT_MASSIVE_PROCESSING
    poll_interval: int = DELAY_POLL_INTERVAL
    default_security_code: str = os.getenv("DEFAULT_SECURITY_CODE", "5858")
    default_massive_security_code: str = os.getenv("DEFAULT_MASSIVE_SECURITY_CODE", "8002")
    restore_on_startup: bool = os.getenv("RESTORE_ON_STARTUP", "true").lower() == "true"
    spreadsheet_dir: str = os.getenv("SPREADSHEET_DIR", "./temp")
    error_screenshot_dir: str = os.getenv("ERROR_SCREENSHOT_DIR", "./screenshots")

@dataclass
class APIConfig:
    """API configuration."""
    host: str = os.getenv("API_HOST", "0.0.0.0")
    port: int = int(os.getenv("API_PORT", "8000"))
    admin_api_key: str = os.getenv("ADMIN_API_KEY", "")
    cors_origins: List[str] = field(default_factory=lambda: os.getenv("CORS_ORIGINS", "*").split(","))

# ------------------------------ MAIN SETTINGS CLASS ------------------------------

class Settings:
    """Main application settings."""

    APP_NAME: str = "Shalom Tenant Automation API"
    APP_VERSION: str = "1.0.0"

    def __init__(self):
        self.database = DatabaseConfig()
        self.browser = BrowserConfig()
        self.site = SiteConfig()
        self.concurrency = ConcurrencyConfig()
        self.workflow = WorkflowConfig()
        self.api = APIConfig()

        self._setup_logging()

    def _setup_logging(self):
        """Configure application logging."""
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

# ------------------------------ GLOBAL SETTINGS INSTANCE ------------------------------
settings = Settings()

# ------------------------------ END OF FILE ------------------------------
