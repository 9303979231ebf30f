"""Review queue for city runs that came back empty or failed."""
import json
from datetime import datetime
from pathlib import Path
from typing import Union

from scrapers.config import city_slug

from .models import FailedRun


class ReviewQueue:
    """
    File-based queue of failed city runs.

    Structure:
        queue_dir/
            pending/      <- Runs waiting for someone to look at the portal
            reviewed/     <- Runs that have been looked at
    """

    def __init__(self, queue_dir: Union[Path, str] = "data/review_queue"):
        self.queue_dir = Path(queue_dir)
        self.pending_dir = self.queue_dir / "pending"
        self.reviewed_dir = self.queue_dir / "reviewed"

        self.pending_dir.mkdir(parents=True, exist_ok=True)
        self.reviewed_dir.mkdir(parents=True, exist_ok=True)

    def add(self, run: FailedRun) -> Path:
        """Queue a failed run. Returns the path of the written entry."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        filepath = self.pending_dir / f"{timestamp}_{city_slug(run.city)}.json"

        data = run.to_dict()
        data["queued_at"] = datetime.now().isoformat()

        filepath.write_text(json.dumps(data, indent=2))
        return filepath

    def get_pending(self, limit: int = 10) -> list[tuple[Path, FailedRun]]:
        """Pending entries, oldest first, with the file each was read from."""
        entries = []
        for path in sorted(self.pending_dir.glob("*.json"))[:limit]:
            data = json.loads(path.read_text())
            data.pop("queued_at", None)
            entries.append((path, FailedRun.from_dict(data)))
        return entries

    def mark_reviewed(self, path: Path, resolution: str, notes: str = "") -> Path:
        """
        Move a pending entry to reviewed/.

        Args:
            path: Pending file, as returned by get_pending()
            resolution: One of 'fixed', 'portal_down', 'skip', 'permanent_block'
            notes: Free text

        Returns the path to the reviewed file.
        """
        path = Path(path)
        if not path.exists() or path.parent != self.pending_dir:
            raise ValueError(f"Not a pending review entry: {path}")

        data = json.loads(path.read_text())
        data["reviewed_at"] = datetime.now().isoformat()
        data["resolution"] = resolution
        data["notes"] = notes

        dest = self.reviewed_dir / path.name
        dest.write_text(json.dumps(data, indent=2))
        path.unlink()
        return dest

    def pending_count(self) -> int:
        """Number of entries waiting for review."""
        return len(list(self.pending_dir.glob("*.json")))
