"""Background git-time refresh units."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone

from projman.core.errors import GitProbeError
from projman.projects.models import now_utc
from projman.projects.refresh import RefreshCoordinator
from projman.projects.registry import Registry
from projman.projects.store import load_registry, save_registry

T1 = datetime(2024, 5, 1, tzinfo=timezone.utc)
T2 = datetime(2024, 5, 2, tzinfo=timezone.utc)


def _store(settings, *projects) -> Registry:
    reg = Registry(machine_id=settings.machine_id)
    for p in projects:
        reg.add_project(p)
    save_registry(reg, settings)
    return reg


def test_is_stale(settings, make_project):
    coord = RefreshCoordinator(settings, probe=lambda path: None)
    now = now_utc()

    assert coord.is_stale(make_project("a"), now)
    assert coord.is_stale(make_project("b", git_updated_at=now - timedelta(hours=25)), now)
    assert not coord.is_stale(make_project("c", git_updated_at=now - timedelta(hours=1)), now)


def test_refresh_writes_probed_time(settings, make_project):
    p = make_project("alpha")
    other = make_project("beta", tags=["keep"])
    _store(settings, p, other)
    probed = []

    def probe(path):
        probed.append(str(path))
        return T1

    assert RefreshCoordinator(settings, probe=probe).refresh_project(p.id) == T1

    reg = load_registry(settings)
    assert reg.get_project(p.id).git_updated_at == T1
    assert reg.get_project(other.id).tags == ["keep"]
    assert probed == [p.path]


def test_fresh_project_is_not_probed(settings, make_project):
    p = make_project("alpha", git_updated_at=now_utc())
    _store(settings, p)

    def probe(path):
        raise AssertionError("should not probe")

    assert RefreshCoordinator(settings, probe=probe).refresh_project(p.id) is None


def test_probe_returning_none_leaves_store_untouched(settings, make_project):
    p = make_project("alpha")
    _store(settings, p)
    revision = load_registry(settings).revision

    assert RefreshCoordinator(settings, probe=lambda path: None).refresh_project(p.id) is None
    assert load_registry(settings).revision == revision


def test_probe_failure_is_logged_not_raised(settings, make_project, caplog):
    p = make_project("alpha")
    _store(settings, p)

    def probe(path):
        raise GitProbeError("git exploded")

    with caplog.at_level(logging.WARNING, logger="projman"):
        assert RefreshCoordinator(settings, probe=probe).refresh_project(p.id) is None

    assert "git exploded" in caplog.text
    assert load_registry(settings).get_project(p.id).git_updated_at is None


def test_missing_store_is_logged_not_raised(settings, caplog):
    with caplog.at_level(logging.WARNING, logger="projman"):
        assert RefreshCoordinator(settings, probe=lambda path: T1).refresh_project("x") is None
    assert "Registry not found" in caplog.text


def test_project_removed_during_probe_is_not_resurrected(settings, make_project):
    p = make_project("alpha")
    _store(settings, p)

    def probe(path):
        reg = load_registry(settings)
        reg.remove_project(p.id)
        save_registry(reg, settings)
        return T1

    assert RefreshCoordinator(settings, probe=probe).refresh_project(p.id) is None
    assert load_registry(settings).get_project(p.id) is None


def test_dispatch_returns_before_units_finish(settings, make_project):
    p = make_project("alpha")
    _store(settings, p)
    release = threading.Event()

    def probe(path):
        release.wait(5)
        return T1

    batch = RefreshCoordinator(settings, probe=probe).dispatch([p.id])

    assert len(batch) == 1
    assert not batch.done()
    assert load_registry(settings).get_project(p.id).git_updated_at is None

    release.set()
    assert batch.wait(5)
    assert load_registry(settings).get_project(p.id).git_updated_at == T1


def test_units_for_different_projects_do_not_lose_updates(settings, make_project):
    projects = [make_project(f"p{i}") for i in range(6)]
    _store(settings, *projects)
    barrier = threading.Barrier(len(projects))

    def probe(path):
        # Every unit has loaded the same snapshot before anyone writes.
        barrier.wait(5)
        return T1

    batch = RefreshCoordinator(settings, probe=probe, attempts=10).dispatch([p.id for p in projects])
    assert batch.wait(10)

    reg = load_registry(settings)
    assert all(reg.get_project(p.id).git_updated_at == T1 for p in projects)


def test_racing_units_on_same_project_store_one_candidate(settings, make_project):
    p = make_project("alpha")
    keep = make_project("beta", tags=["x"])
    _store(settings, p, keep)
    barrier = threading.Barrier(2)
    values = iter([T1, T2])
    lock = threading.Lock()

    def probe(path):
        with lock:
            value = next(values)
        barrier.wait(5)
        return value

    coord = RefreshCoordinator(settings, probe=probe)
    batch = coord.dispatch([p.id, p.id])
    assert batch.wait(10)

    reg = load_registry(settings)
    assert reg.get_project(p.id).git_updated_at in (T1, T2)
    assert reg.get_project(keep.id).tags == ["x"]
    assert len(reg) == 2
