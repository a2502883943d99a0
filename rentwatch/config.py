# rentwatch/config.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

# values from .env (if present) become regular environment variables
load_dotenv()


def _get_str(name: str, default: str) -> str:
    v = os.getenv(name, "").strip()
    return v or default


def _get_bool(name: str, default: bool) -> bool:
    v = os.getenv(name, "").strip().lower()
    if not v:
        return default
    return v in ("1", "true", "yes", "on")


def _get_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)).strip())
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)).strip())
    except ValueError:
        return default


def _get_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return list(default)
    return [x.strip() for x in raw.split(",") if x.strip()]


def _get_int_set(name: str, default: set[int]) -> frozenset[int]:
    out = set()
    for item in _get_list(name, []):
        try:
            out.add(int(item))
        except ValueError:
            continue
    return frozenset(out or default)


DEFAULT_UA = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/125.0 Safari/537.36"
)

PHONE_POLICIES = ("any", "kg", "kg_strict")
SEEN_POLICIES = ("on_delivery", "on_attempt")
SEEN_BACKENDS = ("sqlite", "json")

# Telegram caps photo captions at 1024 chars; below ~200 the fixed lines no longer fit
CAPTION_LEN_RANGE = (200, 1024)


@dataclass(frozen=True)
class Settings:
    # --- Telegram ---
    telegram_token: str = ""
    telegram_chat_id: str = ""

    # --- Source ---
    base_url: str = "https://lalafo.kg"
    city_slug: str = "bishkek"
    city_name: str = "Бишкек"
    listing_path: str = "kvartiry/arenda-kvartir/dolgosrochnaya-arenda-kvartir"
    pages: int = 3
    ads_limit: int = 100

    # --- Filters ---
    max_price_kgs: int = 50_000
    allowed_rooms: frozenset[int] = field(default_factory=lambda: frozenset({1, 2}))
    owner_only: bool = True
    require_phone: bool = True
    phone_policy: str = "kg"

    # --- Seen store ---
    seen_policy: str = "on_delivery"
    seen_namespace: str = "seen_v2"
    seen_backend: str = "sqlite"
    state_db: str = "state.db"
    state_file: str = "seen.json"

    # --- Timing ---
    poll_sec: int = 600
    page_delay_sec: float = 1.0
    send_delay_sec: float = 1.5
    retry_max_sec: int = 60

    # --- HTTP ---
    http_timeout: float = 20.0
    user_agent: str = DEFAULT_UA
    accept_language: str = "ru,en;q=0.8"

    # --- Output ---
    caption_max_len: int = 1024
    location_random_rate: float = 0.2

    # --- HTTP trigger ---
    host: str = "0.0.0.0"
    port: int = 8000
    run_path: str = "/run"

    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.phone_policy not in PHONE_POLICIES:
            raise ValueError(f"unknown PHONE_POLICY {self.phone_policy!r}, expected one of {PHONE_POLICIES}")
        if self.seen_policy not in SEEN_POLICIES:
            raise ValueError(f"unknown SEEN_POLICY {self.seen_policy!r}, expected one of {SEEN_POLICIES}")
        if self.seen_backend not in SEEN_BACKENDS:
            raise ValueError(f"unknown SEEN_BACKEND {self.seen_backend!r}, expected one of {SEEN_BACKENDS}")
        if not self.run_path.startswith("/"):
            object.__setattr__(self, "run_path", "/" + self.run_path)
        lo, hi = CAPTION_LEN_RANGE
        if not lo <= self.caption_max_len <= hi:
            object.__setattr__(self, "caption_max_len", min(max(self.caption_max_len, lo), hi))

    @property
    def has_credentials(self) -> bool:
        return bool(self.telegram_token and self.telegram_chat_id)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build the settings once at startup; the instance is passed to every component."""
        return cls(
            telegram_token=_get_str("TELEGRAM_BOT_TOKEN", ""),
            telegram_chat_id=_get_str("TELEGRAM_CHAT_ID", ""),
            base_url=_get_str("BASE_URL", cls.base_url).rstrip("/"),
            city_slug=_get_str("CITY_SLUG", cls.city_slug),
            city_name=_get_str("CITY_NAME", cls.city_name),
            listing_path=_get_str("LISTING_PATH", cls.listing_path).strip("/"),
            pages=max(1, _get_int("PAGES", cls.pages)),
            ads_limit=max(1, _get_int("ADS_LIMIT", cls.ads_limit)),
            max_price_kgs=_get_int("MAX_PRICE_KGS", cls.max_price_kgs),
            allowed_rooms=_get_int_set("ALLOWED_ROOMS", {1, 2}),
            owner_only=_get_bool("OWNER_ONLY", cls.owner_only),
            require_phone=_get_bool("REQUIRE_PHONE", cls.require_phone),
            phone_policy=_get_str("PHONE_POLICY", cls.phone_policy).lower(),
            seen_policy=_get_str("SEEN_POLICY", cls.seen_policy).lower(),
            seen_namespace=_get_str("SEEN_NAMESPACE", cls.seen_namespace),
            seen_backend=_get_str("SEEN_BACKEND", cls.seen_backend).lower(),
            state_db=_get_str("STATE_DB", cls.state_db),
            state_file=_get_str("STATE_FILE", cls.state_file),
            poll_sec=max(60, _get_int("POLL_SEC", cls.poll_sec)),
            page_delay_sec=_get_float("PAGE_DELAY_SEC", cls.page_delay_sec),
            send_delay_sec=_get_float("SEND_DELAY_SEC", cls.send_delay_sec),
            retry_max_sec=_get_int("RETRY_MAX_SEC", cls.retry_max_sec),
            http_timeout=_get_float("HTTP_TIMEOUT", cls.http_timeout),
            user_agent=_get_str("USER_AGENT", cls.user_agent),
            accept_language=_get_str("ACCEPT_LANGUAGE", cls.accept_language),
            caption_max_len=_get_int("CAPTION_MAX_LEN", cls.caption_max_len),
            location_random_rate=_get_float("LOCATION_RANDOM_RATE", cls.location_random_rate),
            host=_get_str("HOST", cls.host),
            port=_get_int("PORT", cls.port),
            run_path=_get_str("RUN_PATH", cls.run_path),
            log_level=_get_str("LOG_LEVEL", cls.log_level).upper(),
        )
