from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PlanError(Exception):
    """Base error envelope. Prefer returning/printing these rather than raising raw exceptions."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<plan>"
        return f"{loc}: {self.code}: {self.message}"


class PlanLoadError(PlanError):
    pass


class PlanValidationError(PlanError):
    pass


class NotFoundError(PlanError):
    pass


class InvalidStateError(PlanError):
    pass


class DependencyError(PlanError):
    pass


class SelfReferenceError(DependencyError):
    pass


class CrossPlanError(DependencyError):
    pass


class CycleError(DependencyError):
    pass


class PredecessorIncompleteError(PlanError):
    pass


class DependentsExistError(PlanError):
    pass


class ConcurrentUpdateError(PlanError):
    pass


class StorageError(PlanError):
    pass


def not_found(kind: str, entity_id: str) -> NotFoundError:
    return NotFoundError(
        code="E_NOT_FOUND",
        message=f"{kind} not found: {entity_id}",
        path=f"{kind}:{entity_id}",
    )
