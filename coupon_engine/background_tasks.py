"""Background task management."""

import threading

from .logging_utils import get_logger
from .services.coupon_service import CouponService
from .settings import Settings

logger = get_logger(__name__)


def run_unlock_sweep_loop(
    coupon_service: CouponService,
    settings: Settings,
    stop_event: threading.Event,
):
    """Run the unlock sweep every `unlock_sweep_interval` until stopped."""
    interval = settings.unlock_sweep_interval.total_seconds()
    while not stop_event.is_set():
        try:
            coupon_service.sweep_expired_locks()
        except Exception as e:
            logger.error(f"unlock_sweep worker error: {e}")

        # Event.wait returns early when stop is requested
        stop_event.wait(interval)


def start_unlock_sweep_thread(
    coupon_service: CouponService,
    settings: Settings,
) -> tuple[threading.Thread, threading.Event]:
    """Start background thread for periodically clearing expired locks."""
    stop_event = threading.Event()
    thread = threading.Thread(
        target=run_unlock_sweep_loop,
        args=(coupon_service, settings, stop_event),
        daemon=True,
    )
    thread.start()
    logger.info("Started unlock_sweep worker thread")
    return thread, stop_event
