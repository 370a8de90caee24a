# ------------------------------ IMPORTS ------------------------------
import logging
import time
from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Tuple, Callable, Awaitable

from playwright.async_api import Page, TimeoutError as PlaywrightTimeoutError

from core.config.settings import settings, WorkflowConfig
from core.exceptions import WorkflowError
from .helpers import (
    resolve,
    wait_visible,
    is_visible_within,
    click,
    click_if_present,
    fill,
    wait_until,
    workflow_step,
    capture_error_screenshot,
    parse_registration_content,
)
from .selectors import (
    Locators,
    SiteUrls,
    DEFAULT_LOCATORS,
    DEFAULT_URLS,
    DEFAULT_CONTENT_TYPE,
    DEFAULT_PRODUCT_TYPE,
    product_label,
)

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "Unknown error"
SUCCESS_MESSAGE = "Shipment registered successfully"

# Placeholder labels of the custom size inputs, keyed by dimension name.
DIMENSION_FIELDS = {"height": "Alto", "width": "Ancho", "length": "Largo", "weight": "Peso"}

# ------------------------------ DATA CLASSES ------------------------------

@dataclass
class Recipient:
    document_number: str
    name: Optional[str] = None
    phone: Optional[str] = None

@dataclass
class Dimensions:
    height: Optional[float] = None
    width: Optional[float] = None
    length: Optional[float] = None
    weight: Optional[float] = None

    def filled(self) -> Dict[str, float]:
        return {name: value for name, value in vars(self).items() if value is not None}

@dataclass
class ShipmentRequest:
    origin: str
    destination: str
    recipient: Recipient
    product_type: str = DEFAULT_PRODUCT_TYPE
    warranty: bool = False
    secure_billing: bool = False
    security_code: str = "5858"
    content_type: Optional[str] = None
    dimensions: Optional[Dimensions] = None

@dataclass
class ShipmentResult:
    success: bool
    message: str
    registration_number: Optional[str] = None
    price: Optional[float] = None
    elapsed_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"success": self.success, "message": self.message}
        if self.success:
            data["registration_number"] = self.registration_number
            data["price"] = self.price
        if self.elapsed_ms is not None:
            data["elapsed_ms"] = self.elapsed_ms
        return data

# ------------------------------ SHIPMENT WORKFLOW ------------------------------

class ShipmentWorkflow:
    """Registers a single shipment by walking the portal's step-by-step form.

    Each step waits for its own marker before acting, so a step that cannot
    complete raises with its name and the run is abandoned. Nothing is resumed
    from the middle; callers resubmit from the start.
    """

    def __init__(
        self,
        page: Page,
        request: ShipmentRequest,
        locators: Locators = DEFAULT_LOCATORS,
        urls: SiteUrls = DEFAULT_URLS,
        config: WorkflowConfig = None,
        session_id: str = "",
    ):
        self.page = page
        self.request = request
        self.locators = locators
        self.urls = urls
        self.config = config or settings.workflow
        self.session_id = session_id
        self.completed_steps: List[str] = []
        self.error_screenshot: Optional[str] = None
        self.result: Optional[ShipmentResult] = None

    @property
    def steps(self) -> List[Tuple[str, Callable[[], Awaitable[None]]]]:
        return [
            ("reset", self._reset),
            ("product_type", self._select_product_type),
            ("locations", self._select_locations),
            ("warranty", self._choose_warranty),
            ("recipient", self._fill_recipient),
            ("secure_billing", self._choose_secure_billing),
            ("sworn_declaration", self._handle_sworn_declaration),
            ("security_code", self._enter_security_code),
            ("submit", self._submit),
            ("extract", self._extract),
        ]

    async def run(self) -> ShipmentResult:
        """Execute every step in order and return the extracted result."""
        logger.info(f"[{self.session_id}] Starting shipment registration...")
        start = time.monotonic()

        try:
            for name, action in self.steps:
                async with workflow_step(name, self.session_id):
                    await action()
                self.completed_steps.append(name)
        except WorkflowError:
            self.error_screenshot = await capture_error_screenshot(
                self.page, self.config.error_screenshot_dir, "error", self.session_id
            )
            raise

        self.result.elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"[{self.session_id}] Registration finished in {self.result.elapsed_ms}ms (success={self.result.success})")
        return self.result

    async def _continue(self) -> None:
        await click(self.page, self.locators.continue_button, self.config.step_timeout)

    # ---------------------------- STEPS ----------------------------

    async def _reset(self) -> None:
        """Bounce through the home view so no state from a previous run survives."""
        await self.page.goto(self.urls.home, wait_until="commit", timeout=self.config.page_load_timeout)
        await self.page.goto(self.urls.shipments, wait_until="domcontentloaded", timeout=self.config.page_load_timeout)

    async def _select_product_type(self) -> None:
        loc = self.locators
        await wait_visible(self.page, loc.product_type_marker, self.config.step_timeout)

        label = product_label(self.request.product_type)
        logger.info(f"[{self.session_id}] Product type: {label}")
        await click(self.page, loc.product_option.format(label), self.config.step_timeout)

        dimensions = self.request.dimensions
        if (self.request.product_type or "").strip().lower() == "custom" and dimensions:
            for name, value in dimensions.filled().items():
                await fill(self.page, loc.dimension_input.format(DIMENSION_FIELDS[name]), str(value), self.config.step_timeout)

        await self._continue()

    async def _select_locations(self) -> None:
        loc = self.locators
        await wait_visible(self.page, loc.locations_marker, self.config.step_timeout)
        await self._pick_location(loc.origin_label, self.request.origin)
        await self._pick_location(loc.destination_label, self.request.destination)
        await self._continue()

    async def _pick_location(self, label: str, search: str) -> None:
        """Type the search text and commit the first suggestion the picker offers."""
        loc = self.locators
        await click(self.page, loc.location_picker.format(label), self.config.step_timeout)
        await fill(self.page, loc.location_input.format(label), search, self.config.step_timeout)
        suggestion = await wait_visible(self.page, loc.location_suggestion, self.config.step_timeout)
        await suggestion.click()
        logger.debug(f"[{self.session_id}] {label} set from search '{search}'")

    async def _choose_warranty(self) -> None:
        loc = self.locators
        option = loc.warranty_accept if self.request.warranty else loc.warranty_decline
        await wait_visible(self.page, loc.continue_button, self.config.step_timeout)
        await click_if_present(self.page, option, self.config.quick_check_timeout)
        await self._continue()

    async def _fill_recipient(self) -> None:
        loc = self.locators
        recipient = self.request.recipient

        document = await wait_visible(self.page, loc.recipient_document, self.config.step_timeout)
        await document.fill(recipient.document_number)

        name_input = resolve(self.page, loc.recipient_name)

        async def name_populated() -> bool:
            if not await name_input.is_visible():
                return False
            return bool((await name_input.input_value()).strip())

        populated = await wait_until(name_populated, self.config.quick_check_timeout, self.config.poll_interval)
        if populated:
            logger.info(f"[{self.session_id}] Recipient name filled by document lookup")
        elif recipient.name and await name_input.is_visible():
            logger.info(f"[{self.session_id}] Name not autocompleted, filling manually")
            await name_input.fill(recipient.name)

        if recipient.phone:
            phone_input = resolve(self.page, loc.recipient_phone)
            if await phone_input.is_visible():
                await phone_input.fill(recipient.phone)

        await self._continue()

    async def _choose_secure_billing(self) -> None:
        loc = self.locators
        option = loc.secure_billing_accept if self.request.secure_billing else loc.secure_billing_decline
        await wait_visible(self.page, loc.continue_button, self.config.step_timeout)
        await click_if_present(self.page, option, self.config.quick_check_timeout)
        await self._continue()

    async def _handle_sworn_declaration(self) -> None:
        loc = self.locators
        if not await is_visible_within(self.page, loc.declaration_marker, self.config.quick_check_timeout):
            logger.info(f"[{self.session_id}] No sworn declaration requested")
            return

        content_type = self.request.content_type or DEFAULT_CONTENT_TYPE
        option = resolve(self.page, loc.content_type_option.format(content_type))
        if await option.is_visible():
            await option.click()
        else:
            await click(self.page, loc.content_type_option.format(DEFAULT_CONTENT_TYPE), self.config.step_timeout)

    async def _enter_security_code(self) -> None:
        loc = self.locators
        code = self.request.security_code
        await wait_visible(self.page, loc.security_digit.format(code[0]), self.config.step_timeout)
        for digit in code:
            await click(self.page, loc.security_digit.format(digit), self.config.step_timeout)

    async def _submit(self) -> None:
        await self._continue()
        # The result page decides success; a missing marker is read as failure later.
        if not await is_visible_within(self.page, self.locators.success_marker, self.config.submit_timeout):
            logger.warning(f"[{self.session_id}] Success marker not shown after submit")

    async def _extract(self) -> None:
        loc = self.locators
        parsed = parse_registration_content(await self.page.content(), loc.success_text)

        if parsed["registered"]:
            self.result = ShipmentResult(
                success=True,
                message=SUCCESS_MESSAGE,
                registration_number=parsed["registration_number"],
                price=parsed["price"],
            )
            return

        try:
            message = (await resolve(self.page, loc.error_title).inner_text(timeout=self.config.quick_check_timeout)).strip()
        except PlaywrightTimeoutError:
            message = ""
        self.result = ShipmentResult(success=False, message=message or UNKNOWN_ERROR)

# ------------------------------ END OF FILE ------------------------------
