import logging
from time import perf_counter
from typing import Any, Dict, Optional

logger = logging.getLogger("creator_platform.onboarding")


def log_event(user_id: str, step: str, message: str, level: int = logging.INFO, **extra: Any) -> None:
    """Emit a structured onboarding log record."""
    payload: Dict[str, Any] = {"user_id": user_id, "step": step, "message": message}
    payload.update({key: value for key, value in extra.items() if value is not None})
    logger.log(level, payload)


class StepTimer:
    """Context manager timing one call to the payment provider during onboarding."""

    def __init__(self, user_id: str, step: str, message: str) -> None:
        self.user_id = user_id
        self.step = step
        self.message = message
        self.elapsed_ms: Optional[float] = None
        self._start: Optional[float] = None

    def __enter__(self) -> "StepTimer":
        self._start = perf_counter()
        log_event(self.user_id, self.step, f"{self.message} - start")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._start is not None:
            self.elapsed_ms = round((perf_counter() - self._start) * 1000, 2)
        if exc is not None:
            log_event(
                self.user_id,
                self.step,
                f"{self.message} - failed",
                level=logging.WARNING,
                elapsed_ms=self.elapsed_ms,
                error=getattr(exc, "detail", None) or str(exc),
            )
            return
        log_event(self.user_id, self.step, f"{self.message} - done", elapsed_ms=self.elapsed_ms)
