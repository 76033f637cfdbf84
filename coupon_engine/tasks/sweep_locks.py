from coupon_engine import dependencies
from coupon_engine.logging_utils import (
    configure_logging,
    get_logger,
)
from coupon_engine.services.coupon_service import (
    CouponService,
)

logger = get_logger(__name__)


def sweep_locks(coupon_service: CouponService) -> int:
    logger.info("Sweeping expired code locks")
    unlocked = coupon_service.sweep_expired_locks()
    logger.info(f"Unlocked {unlocked} codes.")
    return unlocked


def main():
    """One-shot sweep for external schedulers (cron, k8s CronJob)."""
    settings = dependencies.get_settings()
    configure_logging(json_logs=settings.json_logs, level=settings.log_level)
    coupon_service = dependencies.get_coupon_service(dependencies.get_session_factory())
    sweep_locks(coupon_service)


if __name__ == "__main__":
    main()
