from dataclasses import dataclass, field


@dataclass
class SweepReport:
    """Counts for one sweeper cycle."""

    name: str
    examined: int = 0
    changed: int = 0
    failed: int = 0
    failed_ids: list[int] = field(default_factory=list)

    def record_failure(self, item_id: int | None) -> None:
        self.failed += 1
        if item_id is not None:
            self.failed_ids.append(item_id)

    def as_dict(self) -> dict:
        return {
            "sweeper": self.name,
            "examined": self.examined,
            "changed": self.changed,
            "failed": self.failed,
            "failed_ids": list(self.failed_ids),
        }
