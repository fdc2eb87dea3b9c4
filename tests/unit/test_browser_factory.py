"""Unit tests for browser factory."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from playwright.async_api import Error as PlaywrightError

from docpdf.capture.browser_factory import (
    BrowserFactory, BrowserConfig, BrowserEngineType, BrowserSession, DEFAULT_LAUNCH_ARGS,
    create_browser_factory, create_default_factory, create_debug_factory
)


class TestBrowserConfig:
    """Tests for BrowserConfig class."""

    def test_default_config(self):
        """Test default configuration values."""
        config = BrowserConfig()

        assert config.engine == BrowserEngineType.CHROMIUM
        assert config.headless is True
        assert config.viewport == {'width': 1280, 'height': 720}
        assert config.bypass_csp is True
        assert config.launch_args == DEFAULT_LAUNCH_ARGS

    def test_browser_options_conversion(self):
        """Test conversion to browser launch options."""
        config = BrowserConfig(headless=False, slow_mo=500, custom_arg="value")

        options = config.to_browser_options()

        assert options['headless'] is False
        assert options['slow_mo'] == 500
        assert options['custom_arg'] == "value"
        assert '--no-sandbox' in options['args']
        assert '--disable-features=IsolateOrigins,site-per-process' in options['args']

    def test_launch_args_only_for_chromium(self):
        """Chromium switches are not passed to other engines."""
        options = BrowserConfig(engine=BrowserEngineType.FIREFOX).to_browser_options()

        assert 'args' not in options

    def test_context_options_conversion(self):
        """Test conversion to context options."""
        config = BrowserConfig(
            viewport={'width': 800, 'height': 600},
            user_agent="Test Agent",
            java_script_enabled=False,
            locale='en-GB',
        )

        options = config.to_context_options()

        assert options['viewport'] == {'width': 800, 'height': 600}
        assert options['user_agent'] == "Test Agent"
        assert options['bypass_csp'] is True
        assert options['ignore_https_errors'] is True
        assert options['java_script_enabled'] is False
        assert options['locale'] == 'en-GB'

    def test_javascript_flag_omitted_when_enabled(self):
        assert 'java_script_enabled' not in BrowserConfig().to_context_options()


class TestBrowserFactory:
    """Tests for BrowserFactory class."""

    @pytest.fixture
    def mock_playwright(self):
        """Mock Playwright instance."""
        with patch('docpdf.capture.browser_factory.async_playwright') as mock_pw:
            playwright_mock = AsyncMock()
            async_pw_instance = AsyncMock()
            async_pw_instance.start = AsyncMock(return_value=playwright_mock)
            mock_pw.return_value = async_pw_instance

            browser_mock = AsyncMock()
            browser_mock.is_connected = MagicMock(return_value=True)
            playwright_mock.chromium.launch.return_value = browser_mock
            playwright_mock.firefox.launch.return_value = browser_mock
            playwright_mock.webkit.launch.return_value = browser_mock

            context_mock = AsyncMock()
            browser_mock.new_context.return_value = context_mock

            page_mock = AsyncMock()
            page_mock.set_default_timeout = MagicMock()
            page_mock.set_default_navigation_timeout = MagicMock()
            context_mock.new_page.return_value = page_mock

            yield {
                'playwright': playwright_mock,
                'browser': browser_mock,
                'context': context_mock,
                'page': page_mock
            }

    @pytest.fixture
    def factory(self):
        """Create browser factory for testing."""
        return BrowserFactory(BrowserConfig(headless=True, navigation_timeout_ms=45000))

    @pytest.mark.asyncio
    async def test_open_close_lifecycle(self, factory, mock_playwright):
        """Test session open and close lifecycle."""
        session = await factory.open()

        assert session.is_open is True
        assert session.page is mock_playwright['page']
        mock_playwright['page'].set_default_timeout.assert_called_once_with(45000)

        await factory.close(session)

        assert session.is_open is False
        mock_playwright['page'].close.assert_awaited_once()
        mock_playwright['context'].close.assert_awaited_once()
        mock_playwright['browser'].close.assert_awaited_once()
        mock_playwright['playwright'].stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, factory, mock_playwright):
        """Closing twice only tears down once."""
        session = await factory.open()

        await session.close()
        await session.close()

        mock_playwright['browser'].close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_fails_soft_when_browser_gone(self, factory, mock_playwright):
        """Errors from an already-dead browser are swallowed."""
        mock_playwright['page'].close.side_effect = PlaywrightError("Target closed")
        mock_playwright['browser'].close.side_effect = RuntimeError("connection lost")

        session = await factory.open()
        await session.close()

        mock_playwright['playwright'].stop.assert_awaited_once()
        with pytest.raises(RuntimeError):
            _ = session.page

    @pytest.mark.asyncio
    async def test_session_context_manager_closes_on_error(self, factory, mock_playwright):
        """The session is closed even when the body raises."""
        with pytest.raises(ValueError):
            async with factory.session() as session:
                assert session.is_open
                raise ValueError("boom")

        mock_playwright['browser'].close.assert_awaited_once()
        mock_playwright['playwright'].stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_open_failure_cleans_up(self, factory, mock_playwright):
        """A failed launch still stops the driver before re-raising."""
        mock_playwright['playwright'].chromium.launch.side_effect = PlaywrightError("Executable doesn't exist")

        with pytest.raises(PlaywrightError):
            await factory.open()

        mock_playwright['playwright'].stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_browser_engine_selection(self, mock_playwright):
        """Test different browser engine selection."""
        engines = [
            (BrowserEngineType.CHROMIUM, 'chromium'),
            (BrowserEngineType.FIREFOX, 'firefox'),
            (BrowserEngineType.WEBKIT, 'webkit')
        ]

        for engine_type, engine_attr in engines:
            factory = BrowserFactory(BrowserConfig(engine=engine_type))

            async with factory.session():
                pass

            engine_mock = getattr(mock_playwright['playwright'], engine_attr)
            engine_mock.launch.assert_called()

    def test_page_before_open_raises(self):
        with pytest.raises(RuntimeError):
            _ = BrowserSession(BrowserConfig()).page


class TestConvenienceFunctions:
    """Tests for convenience factory functions."""

    def test_create_browser_factory(self):
        factory = create_browser_factory(engine=BrowserEngineType.WEBKIT, headless=False)

        assert factory.config.engine == BrowserEngineType.WEBKIT
        assert factory.config.headless is False

    def test_create_default_factory(self):
        factory = create_default_factory()

        assert factory.config.headless is True
        assert factory.config.viewport == {'width': 1280, 'height': 720}

    def test_create_debug_factory(self):
        factory = create_debug_factory()

        assert factory.config.headless is False
        assert factory.config.slow_mo == 250
