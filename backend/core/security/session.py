# ------------------------------ SESSION HELPERS ------------------------------
from typing import Optional, Dict, Any
import json
import logging

from playwright.async_api import BrowserContext

logger = logging.getLogger(__name__)

def is_login_location(url: Optional[str], login_marker: str = "login") -> bool:
    """Return True when the page location indicates the login view."""
    return bool(url) and login_marker in url

async def extract_storage_state(context: BrowserContext) -> str:
    """Serialize the context's cookies and local storage to JSON text."""
    storage_state = await context.storage_state()
    return json.dumps(storage_state)

def parse_storage_state(storage_state: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode a stored storage state blob; unreadable blobs are treated as absent."""
    if not storage_state:
        return None

    try:
        parsed = json.loads(storage_state)
    except (TypeError, ValueError) as e:
        logger.warning(f"Stored storage state is not valid JSON, ignoring it: {e}")
        return None

    if not isinstance(parsed, dict):
        logger.warning("Stored storage state is not an object, ignoring it")
        return None
    return parsed

async def clear_auth_state(context: BrowserContext, page) -> None:
    """Drop cookies, local storage and session storage from a live context."""
    await context.clear_cookies()
    await page.evaluate("() => { localStorage.clear(); sessionStorage.clear(); }")

# ------------------------------ END OF FILE ------------------------------
