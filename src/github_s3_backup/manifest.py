from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

SUCCESS = "success"
FAILED = "failed"


@dataclass
class ItemResult:
    """Outcome of backing up or restoring one repository archive."""

    name: str
    status: str = SUCCESS
    key: str = ""
    size_bytes: int = 0
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS


@dataclass
class BackupReport:
    timestamp: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    items: List[ItemResult] = field(default_factory=list)
    schema_version: str = "1.0.0"

    @property
    def attempted(self) -> int:
        return len(self.items)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.ok)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    @property
    def errors(self) -> List[str]:
        return [f"{item.name}: {item.error}" for item in self.items if not item.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "timestamp": self.timestamp,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "repositories": [dataclasses.asdict(item) for item in self.items],
        }
