import pytest

pytest.importorskip("celery")

from infrastructure.tasks.utils import base_task  # noqa: E402


def test_prefork_children_claim_under_distinct_ids(monkeypatch):
    monkeypatch.setattr(base_task.os, "getpid", lambda: 101)
    first = base_task.process_worker_id("worker@host")
    monkeypatch.setattr(base_task.os, "getpid", lambda: 102)
    second = base_task.process_worker_id("worker@host")

    assert first == "worker@host:101"
    assert second == "worker@host:102"


def test_worker_id_falls_back_to_the_machine_hostname(monkeypatch):
    monkeypatch.setattr(base_task.socket, "gethostname", lambda: "box")
    monkeypatch.setattr(base_task.os, "getpid", lambda: 7)
    assert base_task.process_worker_id(None) == "box:7"
