"""Configuration system for document capture.

This module provides configuration management for the conversion pipeline,
including YAML loading, validation, environment-specific overrides and
default credentials taken from the process environment.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from ..models.capture import Credentials
from .browser_factory import BrowserConfig, BrowserEngineType, DEFAULT_LAUNCH_ARGS, DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

ENV_VAR_ENVIRONMENT = 'DOCPDF_ENV'
ENV_VAR_EMAIL = 'DOCPDF_EMAIL'
ENV_VAR_PASSCODE = 'DOCPDF_PASSCODE'

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "capture.yaml"


class WaitStrategy:
    """Available wait strategies for page load completion."""
    NETWORKIDLE = "networkidle"
    LOAD = "load"
    DOMCONTENTLOADED = "domcontentloaded"
    SELECTOR = "selector"
    TIMEOUT = "timeout"


class BrowserSettings(BaseModel):
    """Browser launch and context settings."""

    engine: str = Field(default=BrowserEngineType.CHROMIUM)
    headless: bool = Field(default=True)
    window_width: int = Field(default=1280, ge=320)
    window_height: int = Field(default=720, ge=240)
    user_agent: Optional[str] = Field(default=DEFAULT_USER_AGENT)
    navigation_timeout_ms: int = Field(default=60000, ge=1000)
    bypass_csp: bool = Field(default=True)
    java_script_enabled: bool = Field(default=True)
    ignore_https_errors: bool = Field(default=True)
    locale: Optional[str] = Field(default="en-US")
    launch_args: List[str] = Field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))

    @field_validator('engine')
    @classmethod
    def validate_engine(cls, v):
        valid_engines = {BrowserEngineType.CHROMIUM, BrowserEngineType.FIREFOX, BrowserEngineType.WEBKIT}
        if v not in valid_engines:
            raise ValueError(f"Engine must be one of: {valid_engines}")
        return v


class WaitSettings(BaseModel):
    """Page load and settle waits."""

    wait_strategy: str = Field(default=WaitStrategy.NETWORKIDLE)
    wait_selector: Optional[str] = Field(default=None, description="Selector for the selector strategy")
    load_timeout_ms: int = Field(default=30000, ge=0)
    settle_timeout_ms: int = Field(default=15000, ge=0, description="Bound for networkidle + loader waits")
    poll_interval_ms: int = Field(default=250, ge=1)
    loading_indicator_selectors: List[str] = Field(
        default_factory=lambda: [
            '.loading-indicator',
            '.spinner',
            '[class*="loading-spinner"]',
            '[aria-busy="true"]',
            '[role="progressbar"]',
        ]
    )

    @field_validator('wait_strategy')
    @classmethod
    def validate_wait_strategy(cls, v):
        valid = {
            WaitStrategy.NETWORKIDLE, WaitStrategy.LOAD, WaitStrategy.DOMCONTENTLOADED,
            WaitStrategy.SELECTOR, WaitStrategy.TIMEOUT,
        }
        if v not in valid:
            raise ValueError(f"Wait strategy must be one of: {valid}")
        return v


class GateSettings(BaseModel):
    """Gate resolution bounds."""

    resolution_timeout_ms: int = Field(default=90000, ge=1000)
    required_clear_observations: int = Field(default=2, ge=1)
    action_timeout_ms: int = Field(default=5000, ge=100, description="Per click/fill timeout")
    submit_wait_ms: int = Field(default=10000, ge=0, description="Wait for a submitted form to go away")
    consent_hide_timeout_ms: int = Field(default=3000, ge=0)
    max_consent_attempts: int = Field(default=3, ge=1)
    max_submit_attempts: int = Field(default=3, ge=1)
    submit_labels: List[str] = Field(
        default_factory=lambda: [
            'Continue', 'Submit', 'View Document', 'View document', 'View',
            'Enter', 'Next', 'Proceed', 'Access', 'Open',
        ]
    )


class CaptureSettings(BaseModel):
    """Pagination and snapshot settings."""

    max_pages: int = Field(default=500, ge=1)
    next_page_key: str = Field(default="ArrowRight")
    image_type: str = Field(default="jpeg")
    jpeg_quality: int = Field(default=90, ge=1, le=100)
    label_change_timeout_ms: int = Field(default=4000, ge=0)
    page_settle_timeout_ms: int = Field(default=5000, ge=0)
    render_pause_ms: int = Field(default=750, ge=0, description="Fixed pause when no page label is exposed")
    content_timeout_ms: int = Field(default=15000, ge=0)
    content_selectors: List[str] = Field(
        default_factory=lambda: [
            '.document-view',
            '.presentation-view',
            '[class*="page-view"]',
            '[class*="document-viewer"]',
            '#viewer',
            'canvas',
            'img',
        ]
    )
    chrome_selectors: List[str] = Field(
        default_factory=lambda: [
            'header',
            'footer',
            '#toolbar',
            '.toolbar',
            '.presentation-toolbar',
            '[class*="toolbar"]',
            'nav',
            '[class*="navigation"]',
            '[class*="nav-button"]',
            '[class*="page-controls"]',
            '[class*="banner"]',
        ]
    )
    label_selectors: List[str] = Field(
        default_factory=lambda: [
            '.toolbar-page-indicator',
            '[class*="page-indicator"]',
            '[class*="page-number"]',
            '[class*="pageNumber"]',
            '[data-testid*="page-number"]',
        ]
    )

    @field_validator('image_type')
    @classmethod
    def validate_image_type(cls, v):
        if v not in ('jpeg', 'png'):
            raise ValueError("image_type must be 'jpeg' or 'png'")
        return v


class AssemblySettings(BaseModel):
    """PDF assembly validation."""

    min_pdf_bytes: int = Field(default=128, ge=5)


class OrchestratorSettings(BaseModel):
    """Fallback policy."""

    prefer_direct_download: bool = Field(default=True)
    direct_download_selectors: List[str] = Field(
        default_factory=lambda: [
            'a[download]',
            'a[href*="/download"]',
            'a[href$=".pdf"]',
        ]
    )
    download_timeout_ms: int = Field(default=30000, ge=1000)
    single_shot_fallback: bool = Field(default=True)


class ConverterConfig(BaseModel):
    """Root configuration for the conversion pipeline."""

    environment: str = Field(default="production", description="Environment name")
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    waits: WaitSettings = Field(default_factory=WaitSettings)
    gates: GateSettings = Field(default_factory=GateSettings)
    capture: CaptureSettings = Field(default_factory=CaptureSettings)
    assembly: AssemblySettings = Field(default_factory=AssemblySettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    default_credentials: Credentials = Field(default_factory=Credentials)
    environments: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Environment-specific overrides"
    )

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        valid_environments = {'production', 'staging', 'development', 'test'}
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v

    def get_browser_config(self) -> BrowserConfig:
        """Build the BrowserConfig for one session."""
        settings = self.browser
        return BrowserConfig(
            engine=settings.engine,
            headless=settings.headless,
            viewport={'width': settings.window_width, 'height': settings.window_height},
            user_agent=settings.user_agent,
            navigation_timeout_ms=settings.navigation_timeout_ms,
            bypass_csp=settings.bypass_csp,
            java_script_enabled=settings.java_script_enabled,
            ignore_https_errors=settings.ignore_https_errors,
            locale=settings.locale,
            launch_args=settings.launch_args,
        )


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def build_config(
    config_data: Optional[Dict[str, Any]] = None,
    environment: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> ConverterConfig:
    """Build a validated configuration from raw data.

    Environment overrides from ``environments[<environment>]`` are deep-merged
    over the base data, then default credentials from the process environment
    fill in whatever the file left unset.

    Args:
        config_data: Parsed YAML mapping (may be empty)
        environment: Environment name; defaults to DOCPDF_ENV or the file's value
        env: Environment variables mapping (defaults to os.environ)

    Returns:
        Validated ConverterConfig
    """
    env = os.environ if env is None else env
    data = dict(config_data or {})

    environment = environment or env.get(ENV_VAR_ENVIRONMENT) or data.get('environment', 'production')
    data['environment'] = environment

    env_overrides = (data.get('environments') or {}).get(environment)
    if env_overrides:
        data = _deep_merge(data, env_overrides)

    credentials = dict(data.get('default_credentials') or {})
    if env.get(ENV_VAR_EMAIL) and not credentials.get('email'):
        credentials['email'] = env[ENV_VAR_EMAIL]
    if env.get(ENV_VAR_PASSCODE) and not credentials.get('passcode'):
        credentials['passcode'] = env[ENV_VAR_PASSCODE]
    data['default_credentials'] = credentials

    return ConverterConfig(**data)


class ConfigManager:
    """Manager for configuration loading and caching."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to capture config YAML file. Defaults to config/capture.yaml;
                a missing default file yields built-in defaults.
        """
        self._explicit_path = config_path is not None
        self.config_path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
        self._config: Optional[ConverterConfig] = None
        self._loaded_env: Optional[str] = None

    def load_config(self, force_reload: bool = False, environment: Optional[str] = None) -> ConverterConfig:
        """Load configuration from YAML file.

        Args:
            force_reload: Force reload even if already cached
            environment: Explicit environment, overriding DOCPDF_ENV

        Returns:
            Loaded and validated configuration

        Raises:
            FileNotFoundError: If an explicitly given config file doesn't exist
            ValueError: If YAML or configuration validation fails
        """
        current_env = environment or os.environ.get(ENV_VAR_ENVIRONMENT)

        if self._config is not None and not force_reload and current_env == self._loaded_env:
            return self._config

        if not self.config_path.exists():
            if self._explicit_path:
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
            logger.debug(f"No configuration file at {self.config_path}, using defaults")
            config_data = {}
        else:
            try:
                with open(self.config_path, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {self.config_path}: {e}")

        try:
            self._config = build_config(config_data, environment=current_env)
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}")

        self._loaded_env = current_env
        logger.debug(f"Loaded configuration for environment '{self._config.environment}'")
        return self._config

    @property
    def config(self) -> ConverterConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    @property
    def environment(self) -> str:
        return self.config.environment


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    environment: Optional[str] = None,
) -> ConverterConfig:
    """Load configuration from a YAML file (or defaults)."""
    return ConfigManager(config_path).load_config(environment=environment)
