"""
GameTime browser session
Owns one Playwright browser/context/page, performs the login and loads booking forms
"""

from __future__ import annotations
from tracking import t

import logging
from typing import Any, List, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    TimeoutError as PlaywrightTimeout,
    async_playwright,
)

from automation.shared.booking_contracts import BookingCredentials, BookingParameters, CourtTarget
from automation.shared.errors import AuthenticationError
from infrastructure.constants import (
    BOOKING_FORM_PATH_TEMPLATE,
    BrowserTimeouts,
    GAMETIME_BASE_URL,
    GAMETIME_TIMEZONE,
    LOGIN_BUTTON_SELECTORS,
    LOGIN_PASSWORD_SELECTOR,
    LOGIN_PATH,
    LOGIN_USERNAME_SELECTOR,
    USER_AGENT,
)

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
]


def booking_form_url(base_url: str, target: CourtTarget, parameters: BookingParameters) -> str:
    """Absolute URL of the booking form for one court and slot."""
    t('automation.browser.session.booking_form_url')
    path = BOOKING_FORM_PATH_TEMPLATE.format(
        sport=parameters.sport_id,
        court_id=target.court_id,
        date=parameters.url_date,
        time=parameters.time_minutes,
    )
    return f"{base_url.rstrip('/')}{path}"


class BrowserSession:
    """
    A single logged-in GameTime browser

    The session is single-use: once closed (for instance by the submission
    pipeline right before the final write) a new one must be opened.
    """

    def __init__(
        self,
        *,
        base_url: str = GAMETIME_BASE_URL,
        headless: bool = True,
        navigation_timeout_ms: int = BrowserTimeouts.FORM_NAVIGATION,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        t('automation.browser.session.BrowserSession.__init__')
        self.base_url = base_url.rstrip("/")
        self.headless = headless
        self.navigation_timeout_ms = navigation_timeout_ms
        self.logger = logger or logging.getLogger("BrowserSession")
        self.playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._closed = False

    @property
    def page(self) -> Optional[Page]:
        return self._page

    @property
    def is_open(self) -> bool:
        return self._page is not None and not self._closed

    async def start(self) -> "BrowserSession":
        """Launch Chromium and open the single working page."""
        t('automation.browser.session.BrowserSession.start')
        if self._closed:
            raise RuntimeError("Browser session already closed")
        if self._page is not None:
            return self

        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
        self.context = await self.browser.new_context(
            viewport={"width": 1280, "height": 720},
            user_agent=USER_AGENT,
            timezone_id=GAMETIME_TIMEZONE,
        )
        self.context.set_default_timeout(self.navigation_timeout_ms)
        self._page = await self.context.new_page()
        self.logger.debug("Browser launched (headless=%s)", self.headless)
        return self

    async def login(self, credentials: BookingCredentials) -> None:
        """
        Log in to GameTime

        Raises:
            AuthenticationError: when the login form is missing or the site
                keeps us on the auth page
        """
        t('automation.browser.session.BrowserSession.login')
        page = self._require_page()

        self.logger.info("Logging in to GameTime as %s", credentials.username)
        await page.goto(
            f"{self.base_url}{LOGIN_PATH}",
            wait_until="networkidle",
            timeout=BrowserTimeouts.LOGIN_NAVIGATION,
        )

        username_field = await page.query_selector(LOGIN_USERNAME_SELECTOR)
        if username_field is None:
            raise AuthenticationError("Username field not found")
        await username_field.fill(credentials.username)

        password_field = await page.query_selector(LOGIN_PASSWORD_SELECTOR)
        if password_field is None:
            raise AuthenticationError("Password field not found")
        await password_field.fill(credentials.password)

        login_button = None
        for selector in LOGIN_BUTTON_SELECTORS:
            login_button = await page.query_selector(selector)
            if login_button is not None:
                break
        if login_button is None:
            raise AuthenticationError("Login button not found")

        await login_button.click()
        try:
            await page.wait_for_load_state("networkidle", timeout=BrowserTimeouts.FORM_READY)
        except PlaywrightTimeout:
            # The redirect can settle without reaching network idle
            self.logger.debug("Login navigation did not reach network idle")

        if LOGIN_PATH in page.url:
            raise AuthenticationError("Login failed - still on auth page. Please check credentials.")

        self.logger.info("✅ Login successful, session established")

    async def navigate_to_form(self, url: str, timeout_ms: Optional[int] = None) -> Page:
        """Load ``url`` and return the page; Playwright timeouts propagate."""
        t('automation.browser.session.BrowserSession.navigate_to_form')
        page = self._require_page()
        await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms or self.navigation_timeout_ms)
        return page

    async def open_booking_form(self, target: CourtTarget, parameters: BookingParameters) -> Page:
        t('automation.browser.session.BrowserSession.open_booking_form')
        url = booking_form_url(self.base_url, target, parameters)
        self.logger.info("Navigating to %s booking form: %s", target.label, url)
        return await self.navigate_to_form(url)

    async def cookies(self) -> List[dict]:
        t('automation.browser.session.BrowserSession.cookies')
        if self.context is None:
            return []
        return list(await self.context.cookies())

    async def cookie_header(self) -> str:
        """Cookies of the session as a single ``Cookie`` header value."""
        t('automation.browser.session.BrowserSession.cookie_header')
        return "; ".join(f"{cookie['name']}={cookie['value']}" for cookie in await self.cookies())

    async def close(self) -> None:
        """Tear everything down. Safe to call more than once."""
        t('automation.browser.session.BrowserSession.close')
        if self._closed:
            return
        self._closed = True

        try:
            if self.context is not None:
                await self.context.close()
        except Exception as exc:
            self.logger.debug("Error closing browser context: %s", exc)
        finally:
            self.context = None
            self._page = None

        try:
            if self.browser is not None:
                await self.browser.close()
        except Exception as exc:
            self.logger.debug("Error closing browser: %s", exc)
        finally:
            self.browser = None

        if self.playwright is not None:
            try:
                await self.playwright.stop()
            finally:
                self.playwright = None

        self.logger.debug("Browser session closed")

    def _require_page(self) -> Page:
        if self._page is None or self._closed:
            raise RuntimeError("Browser session is not open")
        return self._page

    async def __aenter__(self) -> "BrowserSession":
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class BrowserSessionFactory:
    """Opens logged-in sessions on demand for the fallback orchestrator."""

    def __init__(
        self,
        *,
        base_url: str = GAMETIME_BASE_URL,
        headless: bool = True,
        navigation_timeout_ms: int = BrowserTimeouts.FORM_NAVIGATION,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        t('automation.browser.session.BrowserSessionFactory.__init__')
        self.base_url = base_url
        self.headless = headless
        self.navigation_timeout_ms = navigation_timeout_ms
        self.logger = logger or logging.getLogger("BrowserSession")

    @classmethod
    def from_settings(cls, settings: Any) -> "BrowserSessionFactory":
        t('automation.browser.session.BrowserSessionFactory.from_settings')
        return cls(
            base_url=settings.base_url,
            headless=settings.browser_headless,
            navigation_timeout_ms=settings.navigation_timeout_ms,
        )

    async def open(self, credentials: BookingCredentials) -> BrowserSession:
        """Start a browser and log in; the browser is closed again if login fails."""
        t('automation.browser.session.BrowserSessionFactory.open')
        session = BrowserSession(
            base_url=self.base_url,
            headless=self.headless,
            navigation_timeout_ms=self.navigation_timeout_ms,
            logger=self.logger,
        )
        try:
            await session.start()
            await session.login(credentials)
        except AuthenticationError:
            await session.close()
            raise
        except Exception as exc:
            await session.close()
            raise AuthenticationError(f"Could not establish GameTime session: {exc}") from exc
        return session


__all__ = ["BrowserSession", "BrowserSessionFactory", "booking_form_url"]
