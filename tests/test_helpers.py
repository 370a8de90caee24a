import asyncio

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from core.exceptions import WorkflowStepError, WorkflowStepTimeout, ValidationError
from core.security.session import is_login_location, parse_storage_state, extract_storage_state, clear_auth_state
from shalom.data.helpers import (
    click_if_present,
    is_visible_within,
    parse_amount,
    parse_registration_content,
    resolve,
    wait_until,
    workflow_step,
)
from shalom.data.selectors import SiteUrls, button, css, product_label, text

from fakes import FakeContext, FakePage, key_of


# ------------------------------ PARSING ------------------------------

def test_registration_content_success():
    parsed = parse_registration_content("<h2>Registrado</h2> Orden E123 -  4567 Total: S/ 12.50")

    assert parsed == {"registered": True, "registration_number": "E123 - 4567", "price": 12.5}


def test_registration_needs_marker_and_number():
    assert parse_registration_content("Registrado, sin número")["registered"] is False
    assert parse_registration_content("E123 - 4567 S/ 10")["registered"] is False
    assert parse_registration_content("")["price"] is None


@pytest.mark.parametrize("raw, expected", [
    ("S/ 12.50", 12.5),
    ("1,250.00", 1250.0),
    ("7.", 7.0),
    ("", None),
    (None, None),
    ("abc", None),
])
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


def test_product_label_falls_back_to_sobre():
    assert product_label("XS") == "Caja Paquete XS"
    assert product_label("custom") == "Otra Medida"
    assert product_label("pallet") == "Sobre"
    assert product_label(None) == "Sobre"


def test_site_urls():
    urls = SiteUrls(base_url="https://pro.shalom.pe")

    assert urls.login == "https://pro.shalom.pe/login"
    assert urls.shipments == "https://pro.shalom.pe/#/envios"
    assert urls.pending_shipments == "https://pro.shalom.pe/#/solicitud/pendientes"


# ------------------------------ AUTH STATE ------------------------------

def test_login_location():
    assert is_login_location("https://pro.shalom.pe/login")
    assert not is_login_location("https://pro.shalom.pe/#/home")
    assert not is_login_location(None)


def test_parse_storage_state_ignores_garbage():
    assert parse_storage_state('{"cookies": []}') == {"cookies": []}
    assert parse_storage_state("not json") is None
    assert parse_storage_state("[1, 2]") is None
    assert parse_storage_state(None) is None


@pytest.mark.asyncio
async def test_storage_state_round_trip_and_clear():
    context = FakeContext()
    context.authenticate()
    page = await context.new_page()

    blob = await extract_storage_state(context)
    assert parse_storage_state(blob)["cookies"][0]["name"] == "session"

    await clear_auth_state(context, page)
    assert context.authenticated is False
    assert "localStorage.clear()" in page.evaluations[0][0]


# ------------------------------ LOCATORS ------------------------------

def test_resolve_builds_the_expected_locator():
    page = FakePage()

    assert resolve(page, text("Registrado")).key == "text:Registrado"
    assert resolve(page, button("Continuar")).key == "role:button:Continuar"
    assert resolve(page, css(".multiselect", has_text="{}").format("Origen")).key == "css:.multiselect|Origen"


@pytest.mark.asyncio
async def test_optional_elements():
    page = FakePage()
    option = text("No deseo Garantía")

    assert await click_if_present(page, option, 10) is False
    assert await is_visible_within(page, option, 10) is False

    page.show(key_of(option))
    assert await click_if_present(page, option, 10) is True
    assert page.clicks == [key_of(option)]


@pytest.mark.asyncio
async def test_wait_until_polls_until_true():
    calls = 0

    async def ready():
        nonlocal calls
        calls += 1
        return calls >= 3

    assert await wait_until(ready, timeout=500, interval=1) is True
    assert calls == 3


@pytest.mark.asyncio
async def test_wait_until_times_out():
    async def never():
        return False

    assert await wait_until(never, timeout=20, interval=5) is False


# ------------------------------ WORKFLOW STEPS ------------------------------

@pytest.mark.asyncio
async def test_step_timeout_is_classified():
    with pytest.raises(WorkflowStepTimeout) as exc_info:
        async with workflow_step("locations", "s1"):
            raise PlaywrightTimeoutError("Timeout 8000ms exceeded")

    assert exc_info.value.step == "locations"
    assert exc_info.value.to_dict()["step"] == "locations"
    assert exc_info.value.to_dict()["error_type"] == "infrastructure"


@pytest.mark.asyncio
async def test_step_driver_error_is_classified():
    with pytest.raises(WorkflowStepError) as exc_info:
        async with workflow_step("recipient", "s1"):
            raise RuntimeError("Target closed")

    assert exc_info.value.step == "recipient"
    assert "Target closed" in exc_info.value.message


@pytest.mark.asyncio
async def test_step_keeps_workflow_and_automation_errors():
    with pytest.raises(WorkflowStepError) as exc_info:
        async with workflow_step("outer", "s1"):
            raise WorkflowStepError("inner", "boom")
    assert exc_info.value.step == "inner"

    with pytest.raises(asyncio.CancelledError):
        async with workflow_step("submit", "s1"):
            raise asyncio.CancelledError()


def test_validation_errors_are_not_infrastructure():
    assert ValidationError("bad").to_dict()["error_type"] == "validation"
