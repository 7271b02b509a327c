import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import dotenv_values

from .logging import get_logger

log = get_logger("config")

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_OPENROUTER_MODEL = "openai/gpt-4o-mini"
DEFAULT_BACKEND = "openai"
BACKENDS = ("openai", "openrouter", "tesseract")
DEFAULT_EXTRACTION_TIMEOUT = 90
DEFAULT_STORE_URL = "https://partner-store.com/wp-json/wc/v3"
DEFAULT_AFFILIATE_ID = "default-affiliate"


@dataclass(frozen=True)
class StoreSettings:
    api_url: str
    consumer_key: str
    consumer_secret: str
    affiliate_id: str


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    Running from a subdirectory (e.g. `src/`) still finds the repository-level `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Return key/value pairs from the nearest .env without touching os.environ."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    try:
        values = {k: v.strip() for k, v in dotenv_values(path).items() if v is not None}
    except (OSError, UnicodeDecodeError) as e:
        log.warning(f"Failed reading .env: {e}")
        return {}
    log.debug(f"Loaded {len(values)} key(s) from .env at {path}")
    return values


def _lookup(dotenv_dir: str, *keys: str) -> Optional[str]:
    for key in keys:
        v = os.environ.get(key)
        if v and v.strip():
            return v.strip()
    env = _read_dotenv(dotenv_dir)
    for key in keys:
        v = env.get(key)
        if v:
            return v
    return None


def load_openai(dotenv_dir: str) -> Optional[str]:
    """Return OpenAI API key from env or .env (OPENAI_API_KEY or lowercase variant)."""
    return _lookup(dotenv_dir, "OPENAI_API_KEY", "openai_api_key")


def load_openai_model(dotenv_dir: str) -> str:
    return _lookup(dotenv_dir, "OPENAI_MODEL") or DEFAULT_OPENAI_MODEL


def load_openai_base_url(dotenv_dir: str) -> Optional[str]:
    return _lookup(dotenv_dir, "OPENAI_BASE_URL")


def load_openrouter(dotenv_dir: str) -> Optional[str]:
    """Return OpenRouter API key from env or .env (OPEN_ROUTER_API_KEY)."""
    return _lookup(dotenv_dir, "OPEN_ROUTER_API_KEY", "open_router_api_key")


def load_openrouter_model(dotenv_dir: str) -> str:
    return _lookup(dotenv_dir, "OPENROUTER_MODEL") or DEFAULT_OPENROUTER_MODEL


def load_backend(dotenv_dir: str) -> str:
    backend = (_lookup(dotenv_dir, "SUPPLYLIST_BACKEND") or DEFAULT_BACKEND).lower()
    if backend not in BACKENDS:
        log.warning(f"Unknown SUPPLYLIST_BACKEND={backend!r}; defaulting to '{DEFAULT_BACKEND}'")
        return DEFAULT_BACKEND
    return backend


def load_extraction_timeout(dotenv_dir: str) -> float:
    raw = _lookup(dotenv_dir, "EXTRACTION_TIMEOUT")
    if not raw:
        return float(DEFAULT_EXTRACTION_TIMEOUT)
    try:
        value = float(raw)
    except ValueError:
        log.warning(f"EXTRACTION_TIMEOUT={raw!r} is not a number; using {DEFAULT_EXTRACTION_TIMEOUT}s")
        return float(DEFAULT_EXTRACTION_TIMEOUT)
    return value if value > 0 else float(DEFAULT_EXTRACTION_TIMEOUT)


def load_store(dotenv_dir: str) -> StoreSettings:
    """Return WooCommerce connection settings; credentials may be empty strings."""
    api_url = _lookup(dotenv_dir, "WOO_API_URL") or DEFAULT_STORE_URL
    key = _lookup(dotenv_dir, "WOO_CONSUMER_KEY") or ""
    secret = _lookup(dotenv_dir, "WOO_CONSUMER_SECRET") or ""
    affiliate = _lookup(dotenv_dir, "AFFILIATE_ID") or DEFAULT_AFFILIATE_ID
    if not key or not secret:
        log.warning("WOO_CONSUMER_KEY/WOO_CONSUMER_SECRET missing; store calls will be rejected")
    return StoreSettings(api_url=api_url, consumer_key=key, consumer_secret=secret, affiliate_id=affiliate)
