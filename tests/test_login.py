import pytest

from shalom.data.login import LoginState, LoginStateMachine, perform_logout

from fakes import BASE_URL, HOME_URL, LOGIN_URL, FakeContext, install_login_form, key_of


async def login_page(locators):
    context = FakeContext()
    page = await context.new_page()
    page.url = LOGIN_URL
    install_login_form(page, locators)
    return page


@pytest.mark.asyncio
async def test_successful_login(locators, workflow_config):
    page = await login_page(locators)

    outcome = await LoginStateMachine(page, locators, config=workflow_config).run("user@x.com", "secret", 3)

    assert outcome.state == LoginState.SUCCEEDED
    assert outcome.to_dict() == {"success": True, "message": "Login successful", "state": "succeeded", "url": HOME_URL}
    assert outcome.attempts == 1
    assert page.context.authenticated


@pytest.mark.asyncio
async def test_invalid_credentials_after_exactly_the_requested_attempts(locators, workflow_config):
    page = await login_page(locators)

    outcome = await LoginStateMachine(page, locators, config=workflow_config).run("user@x.com", "wrong", 2)

    assert outcome.state == LoginState.INVALID_CREDENTIALS
    assert outcome.success is False
    assert outcome.message == "Invalid credentials"
    assert outcome.attempts == 2
    assert page.clicks.count(key_of(locators.login_submit)) == 2
    assert page.reload_count == 1


@pytest.mark.asyncio
async def test_already_authenticated_short_circuits(locators, workflow_config):
    page = await login_page(locators)
    page.url = HOME_URL

    outcome = await LoginStateMachine(page, locators, config=workflow_config).run("user@x.com", "secret")

    assert outcome.state == LoginState.ALREADY_AUTHENTICATED
    assert outcome.success is True
    assert outcome.message == "Already logged in"
    assert page.fills == []
    assert page.clicks == []


@pytest.mark.asyncio
async def test_missing_form_is_a_transient_failure(locators, workflow_config):
    page = await login_page(locators)
    page.hide(key_of(locators.login_form))

    outcome = await LoginStateMachine(page, locators, config=workflow_config).run("user@x.com", "secret", 2)

    assert outcome.state == LoginState.TRANSIENT_FAILURE
    assert outcome.message.startswith("Login failed:")
    assert "Timeout" in outcome.message
    assert page.reload_count == 1


@pytest.mark.asyncio
async def test_no_navigation_and_no_error_exhausts_retries(locators, workflow_config):
    page = await login_page(locators)
    page.on_click[key_of(locators.login_submit)] = lambda p: None

    outcome = await LoginStateMachine(page, locators, config=workflow_config).run("user@x.com", "secret", 2)

    assert outcome.state == LoginState.EXHAUSTED_RETRIES
    assert outcome.message.startswith("Login failed")
    assert outcome.success is False


@pytest.mark.asyncio
async def test_recovers_on_a_later_attempt(locators, workflow_config):
    page = await login_page(locators)
    submit_key = key_of(locators.login_submit)
    real_submit = page.on_click[submit_key]
    attempts = []

    def flaky_submit(p):
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("net::ERR_CONNECTION_RESET")
        real_submit(p)

    page.on_click[submit_key] = flaky_submit

    outcome = await LoginStateMachine(page, locators, config=workflow_config).run("user@x.com", "secret", 3)

    assert outcome.state == LoginState.SUCCEEDED
    assert outcome.attempts == 2


@pytest.mark.asyncio
async def test_enter_is_used_without_submit_button(locators, workflow_config):
    page = await login_page(locators)
    submit_key = key_of(locators.login_submit)
    page.hide(submit_key)
    page.on_key["Enter"] = page.on_click[submit_key]

    outcome = await LoginStateMachine(page, locators, config=workflow_config).run("user@x.com", "secret", 1)

    assert outcome.success
    assert page.keyboard.pressed == ["Enter"]


@pytest.mark.asyncio
async def test_logout_clears_state_and_returns_to_login(locators, workflow_config):
    context = FakeContext()
    context.authenticate()
    page = await context.new_page()
    page.url = HOME_URL

    await perform_logout(page, context, timeout=workflow_config.page_load_timeout)

    assert context.authenticated is False
    assert page.url == f"{BASE_URL}/login"


@pytest.mark.asyncio
async def test_zero_retries_is_not_silently_defaulted(locators, workflow_config):
    page = await login_page(locators)

    with pytest.raises(ValueError):
        await LoginStateMachine(page, locators, config=workflow_config).run("user@x.com", "secret", 0)

    assert page.fills == []
