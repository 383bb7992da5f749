from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from app.core.config import Settings


@dataclass(slots=True)
class PayoutContext:
    """Runtime context shared by the stages of one payout run."""

    run_id: str
    started_at: datetime
    output_dir: Path
    settings: Settings
    dry_run: bool

    def artifact_path(self, name: str) -> Path:
        return self.output_dir / name
