from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any

from evaluation_cycles.schemas.cycle import Cycle, CycleStatus


class CycleStore(ABC):
    """
    Persistence boundary for Cycle records. No business rules live here.

    Writes made inside `atomic()` commit together or not at all; nested blocks
    join the outer one. Outside `atomic()` each write commits on its own.
    """

    @abstractmethod
    def get(self, cycle_id: str, *, for_update: bool = False) -> Cycle | None: ...

    @abstractmethod
    def get_by_name(self, name: str) -> Cycle | None: ...

    @abstractmethod
    def list(
        self,
        *,
        status: CycleStatus | None = None,
        search: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Cycle]: ...

    @abstractmethod
    def count(self, *, status: CycleStatus | None = None, search: str | None = None) -> int: ...

    @abstractmethod
    def create(self, **fields: Any) -> Cycle: ...

    @abstractmethod
    def update(self, cycle_id: str, **fields: Any) -> Cycle: ...

    @abstractmethod
    def update_by_status(self, status: CycleStatus, /, **fields: Any) -> int:
        """Batch update every cycle currently in `status`. Returns the number of rows touched."""

    @abstractmethod
    def atomic(self) -> AbstractContextManager["CycleStore"]: ...
