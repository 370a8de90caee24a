# ------------------------------ IMPORTS ------------------------------
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from playwright.async_api import Page

from core.config.settings import settings, WorkflowConfig
from core.exceptions import WorkflowError, WorkflowStepError
from .helpers import (
    wait_visible,
    is_visible_within,
    click,
    fill,
    wait_until,
    workflow_step,
    capture_error_screenshot,
    resolve,
    parse_amount,
)
from .selectors import Locators, SiteUrls, DEFAULT_LOCATORS, DEFAULT_URLS, text

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Massive shipment registered successfully"
CODE_PATTERN = r"Código:?\s*([A-Z0-9]+)"
COST_PATTERN = r"S/\.?\s*([\d.]+)"

# Walks up from every leaf carrying the order label until it reaches the card
# that also holds the code and the amount, then reports its text and whether
# the card is marked as deleted.
PENDING_CARDS_SCRIPT = """
({ orderLabel, codeLabel, currency, deletedClass }) => {
    const cards = [];
    const labels = Array.from(document.querySelectorAll('*')).filter(
        el => el.children.length === 0 && el.textContent && el.textContent.includes(orderLabel)
    );
    for (const label of labels) {
        let container = label.parentElement;
        let depth = 0;
        while (container && depth < 6) {
            const text = container.innerText || '';
            if (text.includes(codeLabel) && text.includes(currency)) {
                const deleted = !!container.closest('.' + deletedClass) || !!container.querySelector('.' + deletedClass);
                cards.push({ text, deleted });
                break;
            }
            container = container.parentElement;
            depth++;
        }
    }
    return cards;
}
"""

# ------------------------------ DATA CLASSES ------------------------------

@dataclass
class PendingShipment:
    order_number: str
    code: str
    cost: float

    def to_dict(self) -> Dict[str, Any]:
        return {"order_number": self.order_number, "code": self.code, "cost": self.cost}

@dataclass
class MassiveShipmentResult:
    success: bool
    message: str
    shipments: List[PendingShipment] = field(default_factory=list)
    elapsed_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "elapsed_ms": self.elapsed_ms,
            "shipments": [shipment.to_dict() for shipment in self.shipments],
        }

# ------------------------------ SCRAPE PARSING ------------------------------

def parse_pending_shipments(cards: List[Dict[str, Any]], locators: Locators = DEFAULT_LOCATORS) -> List[PendingShipment]:
    """Turn the pending-shipment cards scraped from the page into shipments.

    Deleted cards and cards without an order number are skipped; repeated
    order numbers keep their first occurrence.
    """
    order_pattern = re.escape(locators.pending_order_label) + r":?\s*(\d+)"
    shipments: List[PendingShipment] = []
    seen = set()

    for card in cards or []:
        if card.get("deleted"):
            continue

        content = card.get("text") or ""
        order_match = re.search(order_pattern, content, re.IGNORECASE)
        if not order_match or order_match.group(1) in seen:
            continue

        code_match = re.search(CODE_PATTERN, content, re.IGNORECASE)
        cost_match = re.search(COST_PATTERN, content)
        seen.add(order_match.group(1))
        shipments.append(PendingShipment(
            order_number=order_match.group(1),
            code=code_match.group(1) if code_match else "N/A",
            cost=parse_amount(cost_match.group(1) if cost_match else None) or 0.0,
        ))

    return shipments

# ------------------------------ MASSIVE WORKFLOW ------------------------------

class MassiveShipmentWorkflow:
    """Uploads a prepared spreadsheet and registers every row under one security code."""

    def __init__(
        self,
        page: Page,
        file_path: str,
        security_code: str,
        locators: Locators = DEFAULT_LOCATORS,
        urls: SiteUrls = DEFAULT_URLS,
        config: WorkflowConfig = None,
        session_id: str = "",
    ):
        self.page = page
        self.file_path = file_path
        self.security_code = security_code
        self.locators = locators
        self.urls = urls
        self.config = config or settings.workflow
        self.session_id = session_id
        self.completed_steps: List[str] = []
        self.error_screenshot: Optional[str] = None
        self.shipments: List[PendingShipment] = []

    @property
    def steps(self):
        return [
            ("massive_navigate", self._open_list),
            ("massive_upload", self._upload_file),
            ("massive_acknowledge_upload", self._acknowledge_upload),
            ("massive_security_code", self._assign_security_code),
            ("massive_submit", self._submit),
            ("massive_processing", self._await_processing),
            ("massive_scrape", self._scrape_pending),
        ]

    async def run(self) -> MassiveShipmentResult:
        logger.info(f"[{self.session_id}] Starting massive shipment registration...")
        start = time.monotonic()

        try:
            for name, action in self.steps:
                async with workflow_step(name, self.session_id):
                    await action()
                self.completed_steps.append(name)
        except WorkflowError:
            self.error_screenshot = await capture_error_screenshot(
                self.page, self.config.error_screenshot_dir, "error-massive", self.session_id
            )
            raise

        # Entries of concurrent batches cannot be told apart, so only the newest one is reported.
        latest = self.shipments[-1:]
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"[{self.session_id}] Massive registration completed in {elapsed_ms}ms. Found {len(latest)} shipment(s).")

        return MassiveShipmentResult(success=True, message=SUCCESS_MESSAGE, shipments=latest, elapsed_ms=elapsed_ms)

    # ---------------------------- STEPS ----------------------------

    async def _open_list(self) -> None:
        loc = self.locators
        await self.page.goto(self.urls.shipments_list, wait_until="domcontentloaded", timeout=self.config.page_load_timeout)
        await self.page.reload(wait_until="domcontentloaded", timeout=self.config.page_load_timeout)

        async def controls_rendered() -> bool:
            if await resolve(self.page, loc.massive_upload).is_visible():
                return True
            return await resolve(self.page, loc.register_menu).is_visible()

        await wait_until(controls_rendered, self.config.step_timeout, self.config.poll_interval)

    async def _upload_file(self) -> None:
        logger.info(f"[{self.session_id}] Uploading spreadsheet {self.file_path}")
        async with self.page.expect_file_chooser(timeout=self.config.step_timeout) as chooser_info:
            await self._open_upload_control()
        chooser = await chooser_info.value
        await chooser.set_files(self.file_path)

    async def _open_upload_control(self) -> None:
        loc = self.locators
        upload = resolve(self.page, loc.massive_upload)
        if await upload.is_visible():
            await upload.click()
            return

        logger.info(f"[{self.session_id}] Massive button not visible, checking menu...")
        menu = resolve(self.page, loc.register_menu)
        if not await menu.is_visible():
            raise WorkflowStepError("massive_upload", "Massive shipment button not found")

        await menu.click()
        if not await is_visible_within(self.page, loc.massive_upload, self.config.quick_check_timeout):
            raise WorkflowStepError("massive_upload", "Massive shipment button not found even after opening menu")
        await click(self.page, loc.massive_upload)

    async def _acknowledge_upload(self) -> None:
        ok = await wait_visible(self.page, self.locators.ok_button, self.config.submit_timeout)
        await ok.click()

    async def _assign_security_code(self) -> None:
        loc = self.locators
        logger.info(f"[{self.session_id}] Setting shared security code")

        if await is_visible_within(self.page, loc.massive_code_button, self.config.quick_check_timeout):
            await click(self.page, loc.massive_code_button)
        else:
            await click(self.page, loc.massive_code_fallback, self.config.step_timeout)

        await click(self.page, loc.yes_button, self.config.step_timeout)
        for position, digit in enumerate(self.security_code, start=1):
            await fill(self.page, loc.massive_code_digit.format(position), digit, self.config.step_timeout)

        await click(self.page, loc.generate_button, self.config.step_timeout)
        confirm = await wait_visible(self.page, loc.confirm_button, self.config.step_timeout)
        await confirm.click()

    async def _submit(self) -> None:
        loc = self.locators
        await click(self.page, loc.footer_continue, self.config.step_timeout)
        confirm = await wait_visible(self.page, loc.confirm_button, self.config.step_timeout)
        await confirm.click()

    async def _await_processing(self) -> None:
        # Server-side batch processing is slow; the final OK only appears once it is done.
        ok = await wait_visible(self.page, self.locators.ok_button, self.config.massive_processing_timeout)
        await ok.click()

    async def _scrape_pending(self) -> None:
        loc = self.locators
        await self.page.goto(self.urls.pending_shipments, wait_until="domcontentloaded", timeout=self.config.page_load_timeout)

        if not await is_visible_within(self.page, text(loc.pending_order_label), self.config.step_timeout):
            logger.info(f"[{self.session_id}] No pending shipments found")
            return

        cards = await self.page.evaluate(PENDING_CARDS_SCRIPT, {
            "orderLabel": loc.pending_order_label,
            "codeLabel": loc.pending_code_label,
            "currency": loc.currency_prefix,
            "deletedClass": loc.deleted_class,
        })
        self.shipments = parse_pending_shipments(cards, loc)

# ------------------------------ END OF FILE ------------------------------
