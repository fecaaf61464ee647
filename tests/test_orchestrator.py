import asyncio

import pytest

from gitscribe.exceptions import (
    Cancelled,
    ProviderError,
    ProviderTimeout,
    ProviderUnavailable,
    SessionClosed,
    ValidationExhausted,
)
from gitscribe.orchestrator import (
    GenerationSession,
    GenerationSettings,
    SessionState,
)
from gitscribe.prompt import DiffContext
from gitscribe.providers.transport import CancellationToken

LONG = "feat(auth): implement comprehensive biometric authentication flow"
CONTEXT = DiffContext(branch_name="main", diff="+change")


def _session(driver, **settings):
    return GenerationSession(driver, "fake-model", CONTEXT, GenerationSettings(**settings))


@pytest.mark.asyncio
async def test_valid_first_answer_awaits_user_decision(fake_driver_factory):
    driver = fake_driver_factory(["```\nfix(auth): correct token expiry check\n```"])
    session = _session(driver)

    outcome = await session.generate()

    assert session.state is SessionState.AWAITING_USER_DECISION
    assert outcome.message == "fix(auth): correct token expiry check"
    assert outcome.violated_rules == ()
    assert outcome.error is None
    assert len(driver.requests) == 1
    assert driver.requests[0].model == "fake-model"


@pytest.mark.asyncio
async def test_auto_accept_and_commit(fake_driver_factory):
    session = _session(fake_driver_factory(["feat: add login"]), auto_accept=True)

    outcome = await session.generate()
    assert outcome.state is SessionState.ACCEPTED

    final = session.accept()
    assert final.state is SessionState.COMMITTED
    assert final.message == "feat: add login"


@pytest.mark.asyncio
async def test_invalid_answer_is_retried_with_feedback(fake_driver_factory):
    driver = fake_driver_factory([LONG, "feat(auth): add biometric login"])
    session = _session(driver)

    outcome = await session.generate()

    assert outcome.message == "feat(auth): add biometric login"
    assert len(driver.requests) == 2
    retry_prompt = driver.requests[1].prompt
    assert "# VALIDATION ERRORS IN PREVIOUS ATTEMPT" in retry_prompt
    assert f"# PREVIOUS GENERATED MESSAGE\n{LONG}" in retry_prompt
    assert "Header is" in retry_prompt
    assert retry_prompt.endswith("# STAGED DIFF\n+change")


@pytest.mark.asyncio
@pytest.mark.parametrize("bound", [0, 1, 3])
async def test_retry_bound_yields_validation_exhausted(fake_driver_factory, bound):
    driver = fake_driver_factory(["Not a commit message"])
    session = _session(driver, max_auto_retries=bound)

    outcome = await session.generate()

    assert len(driver.requests) == bound + 1
    assert session.state is SessionState.FAILED
    assert isinstance(outcome.error, ValidationExhausted)
    assert outcome.error.last_message == "Not a commit message"
    assert outcome.message == "Not a commit message"
    assert "header-format" in outcome.violated_rules


@pytest.mark.asyncio
async def test_empty_answer_is_a_validation_failure(fake_driver_factory):
    driver = fake_driver_factory(["", "chore: tidy imports"])
    outcome = await _session(driver).generate()
    assert outcome.message == "chore: tidy imports"
    assert len(driver.requests) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        ProviderTimeout("fake", 1.0),
        ProviderError("fake", 500, "boom"),
        ProviderUnavailable("fake", "no key"),
    ],
)
async def test_adapter_errors_fail_without_retry(fake_driver_factory, error):
    driver = fake_driver_factory([error, "feat: never reached"])
    session = _session(driver)

    outcome = await session.generate()

    assert session.state is SessionState.FAILED
    assert outcome.error is error
    assert outcome.message is None
    assert len(driver.requests) == 1


@pytest.mark.asyncio
async def test_deadline_ends_in_provider_timeout(fake_driver_factory):
    async def slow(_request):
        await asyncio.sleep(5)
        return "feat: too late"

    session = _session(fake_driver_factory([slow]), timeout=0.05)
    outcome = await session.generate()

    assert session.state is SessionState.FAILED
    assert isinstance(outcome.error, ProviderTimeout)
    assert outcome.message is None


@pytest.mark.asyncio
async def test_cancellation_ends_in_cancelled(fake_driver_factory):
    token = CancellationToken()

    async def slow(_request):
        token.cancel()
        await asyncio.sleep(5)
        return "feat: too late"

    session = _session(fake_driver_factory([slow]), timeout=2)
    outcome = await session.generate(token)

    assert session.state is SessionState.FAILED
    assert isinstance(outcome.error, Cancelled)
    assert not isinstance(outcome.error, ProviderTimeout)


@pytest.mark.asyncio
async def test_refinement_accumulates_instructions(fake_driver_factory):
    driver = fake_driver_factory(
        ["feat: add login", "feat(auth): add login", "feat(auth): add oauth login"]
    )
    session = _session(driver)

    await session.generate()
    await session.refine("use the auth scope")
    outcome = await session.refine("mention oauth")

    assert outcome.message == "feat(auth): add oauth login"
    last_prompt = driver.requests[-1].prompt
    assert (
        "# USER REFINEMENT INSTRUCTIONS\nuse the auth scope\nmention oauth"
        in last_prompt
    )
    assert "# PREVIOUS GENERATED MESSAGE\nfeat(auth): add login" in last_prompt
    assert session.refinement.instructions == ["use the auth scope", "mention oauth"]


@pytest.mark.asyncio
async def test_edit_replaces_candidate_and_feeds_refinement(fake_driver_factory):
    driver = fake_driver_factory(["feat: add login", "feat(auth): add oauth login"])
    session = _session(driver)
    await session.generate()

    edited = session.edit("feat(auth): add login\n")
    assert edited.state is SessionState.AWAITING_USER_DECISION
    assert edited.message == "feat(auth): add login"
    assert edited.violated_rules == ()
    assert len(driver.requests) == 1

    await session.refine("mention oauth")
    assert "# PREVIOUS GENERATED MESSAGE\nfeat(auth): add login" in driver.requests[-1].prompt

    final = session.accept()
    assert final.message == "feat(auth): add oauth login"


@pytest.mark.asyncio
async def test_edit_reports_violations_without_failing(fake_driver_factory):
    session = _session(fake_driver_factory(["feat: add login"]))
    await session.generate()

    outcome = session.edit(LONG)

    assert outcome.violated_rules == ("header-length",)
    assert session.state is SessionState.AWAITING_USER_DECISION
    assert session.accept().message == LONG


@pytest.mark.asyncio
async def test_edit_requires_a_candidate_and_text(fake_driver_factory):
    session = _session(fake_driver_factory(["feat: add login"]))
    with pytest.raises(SessionClosed):
        session.edit("feat: add login")
    await session.generate()
    with pytest.raises(ValueError):
        session.edit("  \n")


@pytest.mark.asyncio
async def test_refine_rejects_blank_instruction(fake_driver_factory):
    session = _session(fake_driver_factory(["feat: add login"]))
    await session.generate()
    with pytest.raises(ValueError):
        await session.refine("   ")


@pytest.mark.asyncio
async def test_terminal_states_are_final(fake_driver_factory):
    session = _session(fake_driver_factory(["feat: add login"]))
    await session.generate()
    session.abandon()

    assert session.state is SessionState.ABANDONED
    assert session.refinement is None
    with pytest.raises(SessionClosed):
        session.accept()
    with pytest.raises(SessionClosed):
        await session.refine("again")
    with pytest.raises(SessionClosed):
        await session.generate()
    with pytest.raises(SessionClosed):
        session.abandon()


@pytest.mark.asyncio
async def test_failed_session_cannot_be_refined(fake_driver_factory):
    session = _session(fake_driver_factory([ProviderError("fake", 400, "bad")]))
    await session.generate()
    with pytest.raises(SessionClosed):
        await session.refine("try again")


def test_settings_validation():
    with pytest.raises(ValueError):
        GenerationSettings(timeout=0)
    with pytest.raises(ValueError):
        GenerationSettings(max_auto_retries=-1)


@pytest.mark.asyncio
async def test_settings_from_config_carry_customization(fake_driver_factory):
    from gitscribe.config import Config

    config = Config(
        provider="openai",
        model="gpt-4o-mini",
        request_timeout=12.0,
        max_auto_retries=1,
        prompt_context="Payments API",
    )
    settings = GenerationSettings.from_config(config)
    driver = fake_driver_factory(["feat: add refunds"])
    await GenerationSession(driver, config.model, CONTEXT, settings).generate()

    request = driver.requests[0]
    assert request.timeout == 12.0
    assert "About: Payments API" in request.system
