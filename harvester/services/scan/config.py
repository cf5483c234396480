from __future__ import annotations

from dataclasses import dataclass, field

from harvester.services.replay.engine import ReplayConfig
from harvester.settings import Settings


@dataclass(frozen=True)
class ScanConfig:
    replay: ReplayConfig = field(default_factory=ReplayConfig)
    locale: str = "en_US"
    settle_seconds: float = 0.15
    sort_settle_seconds: float = 0.5
    absolute_timeout_seconds: float = 1200.0
    max_timeout_seconds: float = 2100.0
    deadline_extension_seconds: float = 300.0
    first_intercept_timeout_seconds: float = 5.0
    intercept_fallback_timeout_seconds: float = 15.0
    quiet_window_seconds: float = 2.5
    quiet_check_seconds: float = 0.2
    quiet_max_wait_seconds: float = 120.0
    max_passes: int = 40
    large_thread_threshold: int = 2000
    no_growth_passes: int = 4
    no_growth_passes_large_thread: int = 6
    idle_passes_before_exit: int = 2
    progress_throttle_seconds: float = 0.4
    buffer_poll_seconds: float = 0.1
    enrichment_interval_seconds: float = 1.5
    api_coverage_threshold: float = 0.9
    channel_max_size: int = 500
    dedupe_capacity: int = 5000
    max_emails_per_comment: int = 5
    load_more_wait_seconds: float = 1.2
    reply_wait_seconds: float = 1.0
    progress_poll_seconds: float = 0.06
    max_load_more_clicks: int = 5000
    max_reply_clicks: int = 8000
    no_button_rounds: int = 4
    scroll_every_clicks: int = 4
    reply_click_batch_size: int = 15
    reply_empty_polls_before_exit: int = 5

    def required_no_growth_passes(self, total_comments: int) -> int:
        if total_comments > self.large_thread_threshold:
            return self.no_growth_passes_large_thread
        return self.no_growth_passes

    @classmethod
    def from_settings(cls, settings: Settings) -> ScanConfig:
        return cls(
            replay=ReplayConfig.from_settings(settings),
            locale=settings.platform_locale,
            settle_seconds=settings.scan_settle_seconds,
            sort_settle_seconds=settings.scan_sort_settle_seconds,
            absolute_timeout_seconds=settings.scan_absolute_timeout_seconds,
            max_timeout_seconds=settings.scan_max_timeout_seconds,
            deadline_extension_seconds=settings.scan_deadline_extension_seconds,
            first_intercept_timeout_seconds=settings.scan_first_intercept_timeout_seconds,
            intercept_fallback_timeout_seconds=settings.scan_intercept_fallback_timeout_seconds,
            quiet_window_seconds=settings.scan_quiet_window_seconds,
            quiet_check_seconds=settings.scan_quiet_check_seconds,
            quiet_max_wait_seconds=settings.scan_quiet_max_wait_seconds,
            max_passes=settings.scan_max_passes,
            large_thread_threshold=settings.scan_large_thread_threshold,
            no_growth_passes=settings.scan_no_growth_passes,
            no_growth_passes_large_thread=settings.scan_no_growth_passes_large_thread,
            idle_passes_before_exit=settings.scan_idle_passes_before_exit,
            progress_throttle_seconds=settings.scan_progress_throttle_seconds,
            buffer_poll_seconds=settings.scan_buffer_poll_seconds,
            enrichment_interval_seconds=settings.scan_enrichment_interval_seconds,
            api_coverage_threshold=settings.scan_api_coverage_threshold,
            channel_max_size=settings.scan_channel_max_size,
            dedupe_capacity=settings.payload_dedupe_capacity,
            max_emails_per_comment=settings.extraction_max_emails_per_comment,
            load_more_wait_seconds=settings.dom_load_more_wait_seconds,
            reply_wait_seconds=settings.dom_reply_wait_seconds,
            progress_poll_seconds=settings.dom_progress_poll_seconds,
            max_load_more_clicks=settings.dom_max_load_more_clicks,
            max_reply_clicks=settings.dom_max_reply_clicks,
            no_button_rounds=settings.dom_no_button_rounds,
            scroll_every_clicks=settings.dom_scroll_every_clicks,
            reply_click_batch_size=settings.dom_reply_click_batch_size,
            reply_empty_polls_before_exit=settings.dom_reply_empty_polls_before_exit,
        )
