from tracking import t
from datetime import datetime

import httpx
import pytest
import pytz
from playwright.async_api import Error as PlaywrightError

from automation.executors.court_fallback import CourtFallbackOrchestrator
from automation.executors.retry_controller import RetryController
from automation.executors.submission import BookingSubmissionPipeline
from automation.forms.page_classifier import PageClassifier
from automation.shared.booking_contracts import (
    AcquisitionRequest,
    CourtTarget,
    OutcomeStatus,
)
from automation.shared.cancellation import CancellationToken
from automation.shared.errors import AuthenticationError, NoTargetsConfiguredError
from automation.timing.booking_window import to_epoch_ms
from tests.helpers import (
    DummyLogger,
    FakeClock,
    FakeSessionFactory,
    contended_page,
    form_page,
    make_request,
    too_early_page,
)

CONFIRMED = "/scheduling/confirmation/id/98765"
REJECTED = "/scheduling/index/bookerror"


def _orchestrator(factory, clock=None, responses=None):
    pending = list(responses or [CONFIRMED])

    def handler(request):
        return httpx.Response(302, headers={"Location": pending.pop(0)})

    submission = BookingSubmissionPipeline(
        challenge_settle_ms=0,
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        logger=DummyLogger(),
    )
    classifier = PageClassifier(form_ready_timeout_ms=10, text_timeout_ms=10, logger=DummyLogger())
    return CourtFallbackOrchestrator(
        session_factory=factory,
        clock=clock or FakeClock(),
        retry_controller=RetryController(classifier, max_retries=2, logger=DummyLogger()),
        submission=submission,
        logger=DummyLogger(),
    )


@pytest.mark.asyncio
async def test_contended_courts_fall_through_in_order():
    t('tests.unit.test_court_fallback.test_contended_courts_fall_through_in_order')
    factory = FakeSessionFactory({
        "50": [contended_page()],
        "51": [contended_page()],
        "52": [form_page("52")],
    })

    outcome = await _orchestrator(factory).acquire(make_request(("1", "2", "3")))

    assert outcome.success
    assert outcome.target == CourtTarget("52")
    assert [target.court_number for target in outcome.targets_attempted] == ["1", "2", "3"]
    assert factory.navigations == ["50", "51", "52"]


@pytest.mark.asyncio
async def test_first_court_success_stops_early():
    t('tests.unit.test_court_fallback.test_first_court_success_stops_early')
    factory = FakeSessionFactory({"50": [form_page("50")], "51": [form_page("51")]})

    outcome = await _orchestrator(factory).acquire(make_request(("1", "2", "3")))

    assert outcome.success
    assert [target.court_number for target in outcome.targets_attempted] == ["1"]
    assert factory.navigations == ["50"]
    assert factory.closed == len(factory.sessions)


@pytest.mark.asyncio
async def test_all_courts_failing_reports_exhausted():
    t('tests.unit.test_court_fallback.test_all_courts_failing_reports_exhausted')
    factory = FakeSessionFactory({
        "50": [too_early_page(), too_early_page()],
        "51": [contended_page()],
    })

    outcome = await _orchestrator(factory).acquire(make_request(("1", "2")))

    assert outcome.status is OutcomeStatus.EXHAUSTED
    assert outcome.diagnostic == "All courts unavailable or failed. Tried: Court 1, Court 2"
    assert [target.court_number for target in outcome.targets_attempted] == ["1", "2"]
    assert factory.closed == 1


@pytest.mark.asyncio
async def test_rejected_write_advances_with_a_fresh_session():
    t('tests.unit.test_court_fallback.test_rejected_write_advances_with_a_fresh_session')
    factory = FakeSessionFactory({"50": [form_page("50")], "51": [form_page("51")]})

    outcome = await _orchestrator(factory, responses=[REJECTED, CONFIRMED]).acquire(
        make_request(("1", "2"))
    )

    assert outcome.success
    assert outcome.target == CourtTarget("51")
    assert len(factory.sessions) == 2
    assert factory.closed == 2


@pytest.mark.asyncio
async def test_duplicate_courts_are_retried_independently():
    t('tests.unit.test_court_fallback.test_duplicate_courts_are_retried_independently')
    factory = FakeSessionFactory({"50": [contended_page(), form_page("50")]})

    outcome = await _orchestrator(factory).acquire(make_request(("1", "1")))

    assert outcome.success
    assert len(outcome.targets_attempted) == 2
    assert factory.navigations == ["50", "50"]


@pytest.mark.asyncio
async def test_only_first_navigation_of_each_court_is_scheduled():
    t('tests.unit.test_court_fallback.test_only_first_navigation_of_each_court_is_scheduled')
    clock = FakeClock(round_trip_ms=150)
    factory = FakeSessionFactory({
        "50": [too_early_page(), contended_page()],
        "51": [form_page("51")],
    })

    await _orchestrator(factory, clock=clock).acquire(make_request(("1", "2"), target_instant_ms=1_000_000))

    assert clock.waits == [999_925, 999_925]
    assert factory.navigations == ["50", "50", "51"]


@pytest.mark.asyncio
async def test_empty_target_list_is_run_fatal():
    t('tests.unit.test_court_fallback.test_empty_target_list_is_run_fatal')
    base = make_request()
    request = AcquisitionRequest(
        targets=(),
        target_instant_ms=base.target_instant_ms,
        parameters=base.parameters,
        credentials=base.credentials,
    )
    factory = FakeSessionFactory()

    with pytest.raises(NoTargetsConfiguredError):
        await _orchestrator(factory).acquire(request)
    assert factory.sessions == []


@pytest.mark.asyncio
async def test_login_failure_propagates():
    t('tests.unit.test_court_fallback.test_login_failure_propagates')
    factory = FakeSessionFactory(login_error=AuthenticationError("still on auth page"))

    with pytest.raises(AuthenticationError):
        await _orchestrator(factory).acquire(make_request())


@pytest.mark.asyncio
async def test_cancellation_returns_cancelled_outcome_and_closes_session():
    t('tests.unit.test_court_fallback.test_cancellation_returns_cancelled_outcome_and_closes_session')
    token = CancellationToken()
    token.cancel("shutdown")
    factory = FakeSessionFactory({"50": [form_page("50")]})

    outcome = await _orchestrator(factory).acquire(make_request(), token)

    assert outcome.status is OutcomeStatus.CANCELLED
    assert factory.navigations == []
    assert factory.closed == 1


@pytest.mark.asyncio
async def test_end_to_end_scenario_at_nine_oclock():
    t('tests.unit.test_court_fallback.test_end_to_end_scenario_at_nine_oclock')
    target_instant = to_epoch_ms(pytz.timezone("America/New_York").localize(datetime(2025, 11, 5, 9, 0, 0)))
    clock = FakeClock(round_trip_ms=150)
    factory = FakeSessionFactory({
        "50": [contended_page()],
        "51": [form_page("51")],
    })

    outcome = await _orchestrator(factory, clock=clock).acquire(
        make_request(("1", "2"), target_instant_ms=target_instant)
    )

    assert outcome.success
    assert outcome.confirmation_id == "98765"
    assert len(outcome.targets_attempted) == 2
    assert clock.waits[0] == target_instant - 75


@pytest.mark.asyncio
async def test_browser_error_during_challenge_advances_to_next_court():
    t('tests.unit.test_court_fallback.test_browser_error_during_challenge_advances_to_next_court')
    closed = PlaywrightError("Target page, context or browser has been closed")
    factory = FakeSessionFactory({
        "50": [form_page("50", challenge_error=closed)],
        "51": [form_page("51")],
    })

    outcome = await _orchestrator(factory).acquire(make_request(("1", "2")))

    assert outcome.success
    assert outcome.target == CourtTarget("51")
    assert factory.navigations == ["50", "51"]


@pytest.mark.asyncio
async def test_cookie_read_failure_advances_with_a_fresh_session():
    t('tests.unit.test_court_fallback.test_cookie_read_failure_advances_with_a_fresh_session')
    factory = FakeSessionFactory(
        {"50": [form_page("50")], "51": [form_page("51")]},
        cookie_errors=[PlaywrightError("Browser closed")],
    )

    outcome = await _orchestrator(factory).acquire(make_request(("1", "2")))

    assert outcome.success
    assert outcome.target == CourtTarget("51")
    assert len(factory.sessions) == 2
    assert factory.navigations == ["50", "51"]


@pytest.mark.asyncio
async def test_failed_reopen_mid_run_counts_against_that_court():
    t('tests.unit.test_court_fallback.test_failed_reopen_mid_run_counts_against_that_court')
    crash = AuthenticationError("Could not establish GameTime session: browser crash")
    factory = FakeSessionFactory(
        {"50": [form_page("50")], "52": [form_page("52")]},
        open_errors=[None, crash, None],
    )

    outcome = await _orchestrator(factory, responses=[REJECTED, CONFIRMED]).acquire(
        make_request(("1", "2", "3"))
    )

    assert outcome.success
    assert outcome.target == CourtTarget("52")
    assert [target.court_number for target in outcome.targets_attempted] == ["1", "2", "3"]
    assert factory.navigations == ["50", "52"]


@pytest.mark.asyncio
async def test_failed_reopen_on_last_court_reports_exhausted():
    t('tests.unit.test_court_fallback.test_failed_reopen_on_last_court_reports_exhausted')
    crash = AuthenticationError("Could not establish GameTime session: browser crash")
    factory = FakeSessionFactory({"50": [form_page("50")]}, open_errors=[None, crash])

    outcome = await _orchestrator(factory, responses=[REJECTED]).acquire(make_request(("1", "2")))

    assert outcome.status is OutcomeStatus.EXHAUSTED
    assert outcome.diagnostic == "All courts unavailable or failed. Tried: Court 1, Court 2"
    assert factory.navigations == ["50"]
    assert factory.closed == 1
