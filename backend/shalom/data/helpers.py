# ------------------------------ IMPORTS ------------------------------

import asyncio
import logging
import os
import re
import time
from contextlib import asynccontextmanager
from typing import Optional, Callable, Awaitable, Dict, Any, AsyncIterator
from playwright.async_api import Page, Locator, TimeoutError as PlaywrightTimeoutError

from core.exceptions import WorkflowError, WorkflowStepTimeout, WorkflowStepError
from .selectors import LocatorSpec

logger = logging.getLogger(__name__)

# ------------------------------ PATTERNS ------------------------------

REGISTRATION_PATTERN = r"([A-Z]\d+)\s*-\s*(\d+)"
PRICE_PATTERN = r"S/\s*([\d.]+)"

# ------------------------------ COMMON EXTRACTION HELPERS ------------------------------

def extract_with_regex(text: str, pattern: str, group: int = 1) -> Optional[str]:
    """Extract text using regex pattern."""
    match = re.search(pattern, text or "")
    return match.group(group) if match else None

def parse_amount(amount_str: Optional[str]) -> Optional[float]:
    """Parse amount string like 'S/ 12.50' into a float."""
    if not amount_str:
        return None
    try:
        cleaned = amount_str.replace("S/", "").replace(",", "").strip().rstrip(".")
        return float(cleaned)

    except (ValueError, TypeError):
        return None

def parse_registration_content(content: str, success_text: str = "Registrado") -> Dict[str, Any]:
    """Read the registration number and price out of the final page content.

    A page is a success only when it shows the success marker and a
    registration number can be parsed from it.
    """
    registered = success_text in (content or "")
    match = re.search(REGISTRATION_PATTERN, content or "")
    registration_number = f"{match.group(1)} - {match.group(2)}" if match else None
    price = parse_amount(extract_with_regex(content, PRICE_PATTERN))

    return {
        "registered": registered and registration_number is not None,
        "registration_number": registration_number,
        "price": price,
    }

# ------------------------------ LOCATOR HELPERS ------------------------------

def resolve(page: Page, spec: LocatorSpec) -> Locator:
    """Turn a locator spec into a Playwright locator on the page."""
    if spec.kind == "text":
        locator = page.get_by_text(spec.value, exact=spec.exact)
    elif spec.kind == "role":
        locator = page.get_by_role(spec.role or "button", name=spec.value, exact=spec.exact)
    elif spec.kind == "placeholder":
        locator = page.get_by_placeholder(spec.value, exact=spec.exact)
    elif spec.kind == "css":
        locator = page.locator(spec.value)
    else:
        raise ValueError(f"Unknown locator kind: {spec.kind}")

    if spec.has_text:
        locator = locator.filter(has_text=spec.has_text)

    return locator.nth(spec.nth) if spec.nth is not None else locator.first

async def wait_visible(page: Page, spec: LocatorSpec, timeout: int) -> Locator:
    """Wait until the element is visible and return its locator."""
    locator = resolve(page, spec)
    await locator.wait_for(state="visible", timeout=timeout)
    return locator

async def is_visible_within(page: Page, spec: LocatorSpec, timeout: int) -> bool:
    """Return True if the element becomes visible within the timeout."""
    try:
        await wait_visible(page, spec, timeout)
        return True
    except PlaywrightTimeoutError:
        return False

async def click(page: Page, spec: LocatorSpec, timeout: Optional[int] = None) -> None:
    locator = resolve(page, spec)
    await locator.click(timeout=timeout)

async def click_if_present(page: Page, spec: LocatorSpec, timeout: int) -> bool:
    """Click an optional element; returns False when it never shows up."""
    if not await is_visible_within(page, spec, timeout):
        logger.debug(f"Optional element {spec.describe()} not present")
        return False
    await click(page, spec, timeout)
    return True

async def fill(page: Page, spec: LocatorSpec, value: str, timeout: Optional[int] = None) -> None:
    locator = resolve(page, spec)
    await locator.fill(value, timeout=timeout)

async def wait_until(
    predicate: Callable[[], Awaitable[bool]],
    timeout: int,
    interval: int = 100,
) -> bool:
    """Poll an async predicate until it holds or the timeout (ms) elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout / 1000

    while True:
        if await predicate():
            return True
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(interval / 1000)

# ------------------------------ WORKFLOW STEPS ------------------------------

@asynccontextmanager
async def workflow_step(step: str, session_id: str) -> AsyncIterator[None]:
    """Run one workflow step, converting driver failures into workflow errors."""
    logger.info(f"[{session_id}] Step: {step}")
    try:
        yield
    except WorkflowError:
        raise
    except PlaywrightTimeoutError as e:
        logger.error(f"[{session_id}] Step '{step}' timed out: {e}")
        raise WorkflowStepTimeout(step, str(e)) from e
    except Exception as e:
        logger.exception(f"[{session_id}] Step '{step}' failed: {e}")
        raise WorkflowStepError(step, str(e)) from e

async def capture_error_screenshot(page: Page, directory: str, prefix: str, session_id: str) -> Optional[str]:
    """Save a screenshot of a failed run. Best effort: returns None if it cannot be taken."""
    path = os.path.join(directory, f"{prefix}-{session_id}-{int(time.time() * 1000)}.png")
    try:
        os.makedirs(directory, exist_ok=True)
        await page.screenshot(path=path, full_page=True)
    except Exception as e:
        logger.warning(f"[{session_id}] Could not capture error screenshot: {e}")
        return None

    logger.info(f"[{session_id}] Error screenshot saved to {path}")
    return path

# ------------------------------ END OF FILE ------------------------------
