from dataclasses import dataclass
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    return float(value)


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip() or default


@dataclass(frozen=True)
class Settings:
    app_name: str = os.getenv("APP_NAME", "comment-harvester")
    log_level: str = _env_str("LOG_LEVEL", "INFO")
    log_format: str = _env_str("LOG_FORMAT", "console")
    log_requests: bool = _env_bool("LOG_REQUESTS", True)
    log_uvicorn_access: bool = _env_bool("LOG_UVICORN_ACCESS", False)
    log_request_skip_paths: str = _env_str("LOG_REQUEST_SKIP_PATHS", "/healthz")
    log_redact_fields: str = os.getenv("LOG_REDACT_FIELDS", "")

    platform_origin: str = _env_str("PLATFORM_ORIGIN", "https://www.linkedin.com")
    platform_locale: str = _env_str("PLATFORM_LOCALE", "en_US")

    browser_user_data_dir: str = _env_str("BROWSER_USER_DATA_DIR", ".harvester-profile")
    browser_headless: bool = _env_bool("BROWSER_HEADLESS", True)
    browser_navigation_timeout_seconds: float = _env_float("BROWSER_NAVIGATION_TIMEOUT_SECONDS", 60.0)
    browser_block_heavy_resources: bool = _env_bool("BROWSER_BLOCK_HEAVY_RESOURCES", True)

    replay_http_timeout_seconds: float = _env_float("REPLAY_HTTP_TIMEOUT_SECONDS", 20.0)
    replay_initial_concurrency: int = _env_int("REPLAY_INITIAL_CONCURRENCY", 6)
    replay_min_concurrency: int = _env_int("REPLAY_MIN_CONCURRENCY", 2)
    replay_max_concurrency: int = _env_int("REPLAY_MAX_CONCURRENCY", 10)
    replay_batch_delay_seconds: float = _env_float("REPLAY_BATCH_DELAY_SECONDS", 0.15)
    replay_retry_backoff_seconds: float = _env_float("REPLAY_RETRY_BACKOFF_SECONDS", 3.0)
    replay_rate_limit_backoff_seconds: float = _env_float("REPLAY_RATE_LIMIT_BACKOFF_SECONDS", 3.0)
    replay_rate_limit_pause_seconds: float = _env_float("REPLAY_RATE_LIMIT_PAUSE_SECONDS", 10.0)
    replay_rate_limit_pause_jitter_seconds: float = _env_float("REPLAY_RATE_LIMIT_PAUSE_JITTER_SECONDS", 2.0)
    replay_pause_after_hits: int = _env_int("REPLAY_PAUSE_AFTER_HITS", 3)
    replay_account_limit_after_consecutive: int = _env_int("REPLAY_ACCOUNT_LIMIT_AFTER_CONSECUTIVE", 5)
    replay_budget_window_seconds: float = _env_float("REPLAY_BUDGET_WINDOW_SECONDS", 10.0)
    replay_budget_jitter_seconds: float = _env_float("REPLAY_BUDGET_JITTER_SECONDS", 0.5)
    replay_top_level_budget: int = _env_int("REPLAY_TOP_LEVEL_BUDGET", 15)
    replay_reply_budget: int = _env_int("REPLAY_REPLY_BUDGET", 8)
    replay_max_concurrent_reply_threads: int = _env_int("REPLAY_MAX_CONCURRENT_REPLY_THREADS", 3)
    replay_min_reply_total: int = _env_int("REPLAY_MIN_REPLY_TOTAL", 10)

    payload_dedupe_capacity: int = _env_int("PAYLOAD_DEDUPE_CAPACITY", 5000)
    extraction_max_emails_per_comment: int = _env_int("EXTRACTION_MAX_EMAILS_PER_COMMENT", 5)

    scan_settle_seconds: float = _env_float("SCAN_SETTLE_SECONDS", 0.15)
    scan_sort_settle_seconds: float = _env_float("SCAN_SORT_SETTLE_SECONDS", 0.5)
    scan_absolute_timeout_seconds: float = _env_float("SCAN_ABSOLUTE_TIMEOUT_SECONDS", 1200.0)
    scan_max_timeout_seconds: float = _env_float("SCAN_MAX_TIMEOUT_SECONDS", 2100.0)
    scan_deadline_extension_seconds: float = _env_float("SCAN_DEADLINE_EXTENSION_SECONDS", 300.0)
    scan_first_intercept_timeout_seconds: float = _env_float("SCAN_FIRST_INTERCEPT_TIMEOUT_SECONDS", 5.0)
    scan_intercept_fallback_timeout_seconds: float = _env_float(
        "SCAN_INTERCEPT_FALLBACK_TIMEOUT_SECONDS",
        15.0,
    )
    scan_quiet_window_seconds: float = _env_float("SCAN_QUIET_WINDOW_SECONDS", 2.5)
    scan_quiet_check_seconds: float = _env_float("SCAN_QUIET_CHECK_SECONDS", 0.2)
    scan_quiet_max_wait_seconds: float = _env_float("SCAN_QUIET_MAX_WAIT_SECONDS", 120.0)
    scan_max_passes: int = _env_int("SCAN_MAX_PASSES", 40)
    scan_large_thread_threshold: int = _env_int("SCAN_LARGE_THREAD_THRESHOLD", 2000)
    scan_no_growth_passes: int = _env_int("SCAN_NO_GROWTH_PASSES", 4)
    scan_no_growth_passes_large_thread: int = _env_int("SCAN_NO_GROWTH_PASSES_LARGE_THREAD", 6)
    scan_idle_passes_before_exit: int = _env_int("SCAN_IDLE_PASSES_BEFORE_EXIT", 2)
    scan_progress_throttle_seconds: float = _env_float("SCAN_PROGRESS_THROTTLE_SECONDS", 0.4)
    scan_buffer_poll_seconds: float = _env_float("SCAN_BUFFER_POLL_SECONDS", 0.1)
    scan_enrichment_interval_seconds: float = _env_float("SCAN_ENRICHMENT_INTERVAL_SECONDS", 1.5)
    scan_api_coverage_threshold: float = _env_float("SCAN_API_COVERAGE_THRESHOLD", 0.9)
    scan_channel_max_size: int = _env_int("SCAN_CHANNEL_MAX_SIZE", 500)

    dom_load_more_wait_seconds: float = _env_float("DOM_LOAD_MORE_WAIT_SECONDS", 1.2)
    dom_reply_wait_seconds: float = _env_float("DOM_REPLY_WAIT_SECONDS", 1.0)
    dom_progress_poll_seconds: float = _env_float("DOM_PROGRESS_POLL_SECONDS", 0.06)
    dom_max_load_more_clicks: int = _env_int("DOM_MAX_LOAD_MORE_CLICKS", 5000)
    dom_max_reply_clicks: int = _env_int("DOM_MAX_REPLY_CLICKS", 8000)
    dom_no_button_rounds: int = _env_int("DOM_NO_BUTTON_ROUNDS", 4)
    dom_scroll_every_clicks: int = _env_int("DOM_SCROLL_EVERY_CLICKS", 4)
    dom_reply_click_batch_size: int = _env_int("DOM_REPLY_CLICK_BATCH_SIZE", 15)
    dom_reply_empty_polls_before_exit: int = _env_int("DOM_REPLY_EMPTY_POLLS_BEFORE_EXIT", 5)

    event_queue_max_size: int = _env_int("EVENT_QUEUE_MAX_SIZE", 1000)


settings = Settings()
