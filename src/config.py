"""
Extractor configuration.

Values come from a YAML file (optional) and a handful of LEADX_* environment
overrides. Defaults reproduce the tuned constants of the Maps scraper; all
durations are milliseconds unless the name says otherwise.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError


DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"


class ListingConfig(BaseModel):
    container_selector: str = ".m6QErb[aria-label]"
    item_selector: str = "a.hfpxzc"
    name_attribute: str = "aria-label"
    navigation_timeout_ms: int = Field(60000, gt=0)
    container_timeout_ms: int = Field(20000, gt=0)
    scroll_step_px: int = Field(3000, gt=0)
    scroll_pause_ms: int = Field(1500, ge=0)
    stability_threshold: int = Field(5, ge=1)
    # None: stop on stability only
    max_scroll_iterations: Optional[int] = Field(None, ge=1)


class WorkerConfig(BaseModel):
    concurrency: int = Field(3, ge=1)
    navigation_timeout_ms: int = Field(30000, gt=0)
    phone_wait_timeout_ms: int = Field(5000, ge=0)
    phone_wait_selector: str = 'a[href^="tel:"], button[data-item-id*="phone:tel:"]'
    max_retries: int = Field(2, ge=0)
    retry_delay_ms: int = Field(1000, ge=0)
    detail_view: str = Field("browser", pattern=r"^(browser|static)$")


class BrowserConfig(BaseModel):
    headless: bool = True
    locale: str = "pt-BR"
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1280
    viewport_height: int = 720
    block_resource_types: list[str] = Field(default_factory=lambda: ["image", "media", "font"])
    launch_args: list[str] = Field(default_factory=lambda: [
        '--disable-dev-shm-usage',
        '--disable-gpu',
        '--disable-extensions',
        '--no-first-run',
        '--disable-default-apps',
    ])


class OpsConfig(BaseModel):
    ops_json: bool = False
    ops_log_path: Optional[str] = None
    ops_stdout: bool = False


class ExtractorConfig(BaseModel):
    listing: ListingConfig = Field(default_factory=ListingConfig)
    workers: WorkerConfig = Field(default_factory=WorkerConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    # Phone heuristics locale; see src.pipeline.heuristics.LOCALES
    locale: str = "pt-BR"
    ops: OpsConfig = Field(default_factory=OpsConfig)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def apply_env_overrides(data: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Layer LEADX_* env vars over raw config data (env wins)."""
    env = os.environ if environ is None else environ
    out = dict(data)
    if env.get("LEADX_CONCURRENCY"):
        workers = dict(out.get("workers") or {})
        try:
            workers["concurrency"] = int(env["LEADX_CONCURRENCY"])
        except ValueError as e:
            raise ConfigError(f"LEADX_CONCURRENCY must be an integer: {env['LEADX_CONCURRENCY']!r}") from e
        out["workers"] = workers
    if env.get("LEADX_HEADLESS"):
        browser = dict(out.get("browser") or {})
        browser["headless"] = _env_bool(env["LEADX_HEADLESS"])
        out["browser"] = browser
    if env.get("LEADX_OPS_JSON"):
        ops = dict(out.get("ops") or {})
        ops["ops_json"] = _env_bool(env["LEADX_OPS_JSON"])
        out["ops"] = ops
    return out


def load_config(path: Optional[Path | str] = None, environ: Optional[Dict[str, str]] = None) -> ExtractorConfig:
    """Load config from YAML (if given), apply env overrides and validate."""
    data: Dict[str, Any] = {}
    if path is not None:
        p = Path(path)
        if not p.exists() or not p.is_file():
            raise ConfigError(f"config file not found: {p}")
        try:
            with p.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid YAML in {p}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"config root must be a mapping: {p}")
    data = apply_env_overrides(data, environ)
    try:
        return ExtractorConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid config: {e}") from e
