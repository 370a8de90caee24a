import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.config.settings import (
    Settings,
    APIConfig,
    BrowserConfig,
    ConcurrencyConfig,
    WorkflowConfig,
)
from core.database.connection import init_db
from core.database.session_store import SessionStore
from shalom.data.selectors import DEFAULT_LOCATORS
from shalom.service import ShalomService

from fakes import FakeBrowser, FakePage

ADMIN_KEY = "admin-secret"


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return SessionStore(session_factory)


@pytest.fixture
def workflow_config(tmp_path):
    return WorkflowConfig(
        login_retries=3,
        login_retry_delay=0,
        login_submit_timeout=100,
        page_load_timeout=100,
        step_timeout=100,
        quick_check_timeout=30,
        submit_timeout=100,
        massive_processing_timeout=100,
        poll_interval=5,
        restore_on_startup=False,
        spreadsheet_dir=str(tmp_path / "sheets"),
        error_screenshot_dir=str(tmp_path / "shots"),
    )


@pytest.fixture
def app_settings(workflow_config):
    app_settings = Settings()
    app_settings.workflow = workflow_config
    app_settings.browser = BrowserConfig(block_resources=True)
    app_settings.concurrency = ConcurrencyConfig(
        max_concurrent_operations=5,
        session_lock_timeout=5,
        massive_rate_limit=10,
        massive_rate_period=1,
        shutdown_drain_timeout=5,
    )
    app_settings.api = APIConfig(admin_api_key=ADMIN_KEY)
    return app_settings


@pytest.fixture
def browser():
    return FakeBrowser()


@pytest.fixture
def service(app_settings, session_factory, browser):
    return ShalomService.build(app_settings=app_settings, session_factory=session_factory, browser=browser)


@pytest.fixture
def locators():
    return DEFAULT_LOCATORS


@pytest.fixture
def page():
    return FakePage(url="https://pro.shalom.pe/#/home")
