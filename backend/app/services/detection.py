from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar
from loguru import logger

T = TypeVar("T")


@dataclass(frozen=True)
class Detection(Generic[T]):
    """Outcome of a detector: a confirmed finding (possibly empty) or "could not determine"."""

    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def found(cls, value: T) -> "Detection[T]":
        return cls(value=value)

    @classmethod
    def unavailable(cls, error) -> "Detection[T]":
        return cls(error=str(error) or error.__class__.__name__)

    @property
    def ok(self) -> bool:
        return self.error is None

    def or_default(self, default: T) -> T:
        return self.value if self.ok else default


async def run_detection(label: str, patient_id: int, operation: Awaitable[T]) -> Detection[T]:
    """Await a detector and convert any data-access fault into an unavailable Detection."""
    try:
        return Detection.found(await operation)
    except Exception as e:
        logger.opt(exception=e).error(f"{label} failed for patient {patient_id}: {e}")
        return Detection.unavailable(e)
