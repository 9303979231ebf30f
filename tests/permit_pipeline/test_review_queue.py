"""Tests for the failed-run review queue."""
import json

import pytest

from services.permit_pipeline.models import FailedRun
from services.permit_pipeline.review_queue import ReviewQueue


@pytest.fixture
def temp_queue_dir(tmp_path):
    """Create temp directory for queue storage."""
    return tmp_path / "review_queue"


@pytest.fixture
def failed_run():
    """A city run that came back with nothing."""
    return FailedRun(
        city="Los Altos",
        error="Search button not found",
        started_at="2025-01-03T08:00:00",
        finished_at="2025-01-03T08:02:10",
    )


def test_add_to_queue(temp_queue_dir, failed_run):
    """Adding a run creates a JSON file in pending/."""
    queue = ReviewQueue(temp_queue_dir)
    path = queue.add(failed_run)

    files = list((temp_queue_dir / "pending").glob("*.json"))
    assert files == [path]
    assert path.name.endswith("_los_altos.json")

    data = json.loads(path.read_text())
    assert data["city"] == "Los Altos"
    assert data["error"] == "Search button not found"
    assert "queued_at" in data


def test_get_pending_returns_unreviewed(temp_queue_dir, failed_run):
    """get_pending returns runs that haven't been reviewed."""
    queue = ReviewQueue(temp_queue_dir)
    queue.add(failed_run)

    pending = queue.get_pending()
    assert len(pending) == 1
    path, run = pending[0]
    assert run == failed_run
    assert path.parent == queue.pending_dir


def test_mark_reviewed_moves_file(temp_queue_dir, failed_run):
    """Marking as reviewed moves the file to reviewed/."""
    queue = ReviewQueue(temp_queue_dir)
    path = queue.add(failed_run)

    dest = queue.mark_reviewed(path, "portal_down", "Maintenance window")

    assert not path.exists()
    assert queue.pending_count() == 0
    data = json.loads(dest.read_text())
    assert data["resolution"] == "portal_down"
    assert data["notes"] == "Maintenance window"


def test_mark_reviewed_rejects_unknown_path(temp_queue_dir, tmp_path):
    queue = ReviewQueue(temp_queue_dir)
    with pytest.raises(ValueError):
        queue.mark_reviewed(tmp_path / "nope.json", "skip")


def test_pending_count_and_limit(temp_queue_dir, failed_run):
    queue = ReviewQueue(temp_queue_dir)
    for _ in range(3):
        queue.add(failed_run)

    assert queue.pending_count() == 3
    assert len(queue.get_pending(limit=2)) == 2
