"""Per-item outcomes for bulk operations that continue past failures."""
from dataclasses import dataclass, field


@dataclass
class ItemOutcome:
    item_id: str
    ok: bool
    detail: str | None = None
    external_id: str | None = None


@dataclass
class BatchResult:
    """Ordered outcomes of a batch; one entry per processed item."""

    outcomes: list[ItemOutcome] = field(default_factory=list)

    def record_success(self, item_id: str, detail: str | None = None, external_id: str | None = None) -> None:
        self.outcomes.append(ItemOutcome(item_id, True, detail, external_id))

    def record_failure(self, item_id: str, detail: str) -> None:
        self.outcomes.append(ItemOutcome(item_id, False, detail))

    @property
    def succeeded(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if not o.ok]
