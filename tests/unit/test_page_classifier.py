from tracking import t

import pytest

from automation.forms.page_classifier import PageClassifier, PageType
from tests.helpers import DummyLogger, FakePage, contended_page, form_page, too_early_page

BASE = "https://jct.gametime.net"


@pytest.fixture
def classifier():
    t('tests.unit.test_page_classifier.classifier')
    return PageClassifier(form_ready_timeout_ms=50, text_timeout_ms=50, logger=DummyLogger())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "page,expected",
    [
        (form_page(), PageType.READY),
        (form_page(form_ready=False), PageType.SLOW_LOADING),
        (too_early_page(), PageType.TOO_EARLY),
        (contended_page(), PageType.CONTENDED),
        (FakePage(f"{BASE}/scheduling/index/error"), PageType.TRANSIENT_ERROR),
        (FakePage(f"{BASE}/maintenance", text="502 Bad Gateway"), PageType.TRANSIENT_ERROR),
        (FakePage(f"{BASE}/maintenance", text="Scheduled maintenance"), PageType.UNKNOWN),
        (FakePage(f"{BASE}/scheduling/index/bookerror", text="Something odd"), PageType.UNKNOWN),
    ],
)
async def test_classify_categories(classifier, page, expected):
    t('tests.unit.test_page_classifier.test_classify_categories')
    assert await classifier.classify(page) is expected


@pytest.mark.asyncio
async def test_unreadable_error_page_is_unknown(classifier):
    t('tests.unit.test_page_classifier.test_unreadable_error_page_is_unknown')
    page = FakePage(f"{BASE}/scheduling/index/bookerror", text_error=RuntimeError("detached"))

    assert await classifier.classify(page) is PageType.UNKNOWN


@pytest.mark.asyncio
async def test_unreadable_url_is_unknown(classifier):
    t('tests.unit.test_page_classifier.test_unreadable_url_is_unknown')
    page = FakePage(url_error=RuntimeError("page closed"))

    assert await classifier.classify(page) is PageType.UNKNOWN


@pytest.mark.asyncio
async def test_contended_wording_wins_over_wait_wording(classifier):
    t('tests.unit.test_page_classifier.test_contended_wording_wins_over_wait_wording')
    page = FakePage(
        f"{BASE}/scheduling/index/bookerror",
        text="Another member is booking this court, please wait.",
    )

    assert await classifier.classify(page) is PageType.CONTENDED


@pytest.mark.asyncio
async def test_classification_is_idempotent(classifier):
    t('tests.unit.test_page_classifier.test_classification_is_idempotent')
    for page in (form_page(), too_early_page(), contended_page(), form_page(form_ready=False)):
        first = await classifier.classify(page)
        second = await classifier.classify(page)
        assert first is second


def test_retryable_categories():
    t('tests.unit.test_page_classifier.test_retryable_categories')
    retryable = {page_type for page_type in PageType if page_type.retryable}

    assert retryable == {PageType.TOO_EARLY, PageType.SLOW_LOADING, PageType.UNKNOWN}
