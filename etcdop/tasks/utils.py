# Configuration constants
from etcdop.config import settings


class TaskConfig:
    RETRY_COUNTDOWN = settings.retry_countdown_seconds
    RETRY_MAX_COUNTDOWN = settings.retry_max_countdown_seconds
    RETRY_MAX_RETRIES = settings.retry_max_retries

    @classmethod
    def retry_countdown(cls, retries: int) -> int:
        """Exponential backoff, capped"""
        return min(cls.RETRY_MAX_COUNTDOWN, cls.RETRY_COUNTDOWN * 2**retries)
