"""Tests for the document monitor entry point."""
from app.services.sync.watcher import ChangeWatcher
from app.worker.run_monitor import start_all
from tests.helpers import FakeObserver, make_assistant


async def test_start_all_scans_and_watches_active_assistants(db, session_factory, synchronizer, docs_dir, temp_dir):
    (docs_dir / "aid.txt").write_text("Aid", encoding="utf-8")
    active = make_assistant(db, folder=str(docs_dir))
    missing = make_assistant(db, name="Housing Helper", folder=str(temp_dir / "missing"))
    inactive = make_assistant(db, name="Retired Helper", folder=str(docs_dir), is_active=False)
    no_folder = make_assistant(db, name="Empty Helper")
    watcher = ChangeWatcher(synchronizer, observer_factory=FakeObserver)

    processed = await start_all(synchronizer, watcher, session_factory=session_factory)

    assert processed == {active.id: 1, missing.id: 0}
    assert watcher.is_watching(active.id)
    assert not watcher.is_watching(inactive.id)
    assert not watcher.is_watching(no_folder.id)
    await watcher.shutdown()
