import threading
from collections import defaultdict

from bgcompare.comparison import ComparisonOrchestrator
from bgcompare.models import JobStatus, ModelSpec

MODELS = [
    ModelSpec(id="ok", name="OK", version="v-ok"),
    ModelSpec(id="list-output", name="List", version="v-list"),
    ModelSpec(id="job-fails", name="Fails", version="v-fail"),
    ModelSpec(id="bad-key", name="BadKey", version="v-create"),
    ModelSpec(id="poll-breaks", name="PollBreaks", version="v-poll"),
    ModelSpec(id="canceled", name="Canceled", version="v-cancel"),
]


def _script_mixed(fake_replicate):
    fake_replicate.script("v-ok", "starting", "processing", "succeeded", output="https://out/ok.png")
    fake_replicate.script("v-list", "starting", "succeeded", output=["https://out/a.png", "https://out/b.png"])
    fake_replicate.script("v-fail", "starting", "processing", "failed", error="model crashed")
    fake_replicate.create_failures["v-create"] = (422, {"detail": "invalid version"})
    fake_replicate.script("v-poll", "starting", "succeeded")
    fake_replicate.poll_failures.add("v-poll")
    fake_replicate.script("v-cancel", "starting", "canceled")


def test_every_model_ends_terminal(client, fake_replicate):
    _script_mixed(fake_replicate)

    results = ComparisonOrchestrator(client).run_all(MODELS, "data:image/png;base64,AAAA")

    assert set(results) == {m.id for m in MODELS}
    assert all(job.status.is_terminal for job in results.values())


def test_failures_stay_with_their_model(client, fake_replicate):
    _script_mixed(fake_replicate)

    results = ComparisonOrchestrator(client).run_all(MODELS, "img")

    assert results["ok"].status is JobStatus.SUCCEEDED
    assert results["ok"].trusted_output() == ["https://out/ok.png"]
    assert results["ok"].error is None
    assert results["list-output"].trusted_output() == ["https://out/a.png", "https://out/b.png"]

    assert results["job-fails"].status is JobStatus.FAILED
    assert results["job-fails"].error == "model crashed"
    assert results["bad-key"].status is JobStatus.FAILED
    assert "invalid version" in results["bad-key"].error
    assert results["poll-breaks"].status is JobStatus.FAILED
    assert "status" in results["poll-breaks"].error
    assert results["canceled"].status is JobStatus.FAILED
    assert results["canceled"].error == "Prediction canceled"


def test_names_are_carried_into_jobs(client, fake_replicate):
    results = ComparisonOrchestrator(client).run_all(MODELS[:1], "img")
    assert results["ok"].name == "OK"
    assert results["ok"].modelId == "ok"


def test_updates_per_model_follow_poll_order(client, fake_replicate):
    _script_mixed(fake_replicate)
    seen = defaultdict(list)
    lock = threading.Lock()

    def on_update(model_id, job):
        with lock:
            seen[model_id].append(job.status.value)

    ComparisonOrchestrator(client).run_all(MODELS, "img", on_update=on_update)

    assert seen["ok"] == ["starting", "starting", "processing", "succeeded"]
    assert seen["bad-key"] == ["starting", "failed"]
    assert seen["job-fails"][-1] == "failed"
    for statuses in seen.values():
        assert statuses[0] == "starting"


def test_all_models_start_even_when_one_cannot(client, fake_replicate):
    _script_mixed(fake_replicate)

    ComparisonOrchestrator(client).run_all(MODELS, "img")

    assert sorted(body["version"] for body in fake_replicate.created) == sorted(m.version for m in MODELS)


def test_cancel_fails_unfinished_jobs(client, fake_replicate):
    fake_replicate.script("v-ok", "starting", "processing", "succeeded")
    fake_replicate.script("v-list", "succeeded", output="https://out/done.png")
    cancel = threading.Event()
    cancel.set()

    results = ComparisonOrchestrator(client).run_all(MODELS[:2], "img", cancel=cancel)

    assert results["ok"].status is JobStatus.FAILED
    assert "cancelled" in results["ok"].error
    assert results["list-output"].status is JobStatus.SUCCEEDED


def test_no_models_gives_empty_result(client):
    assert ComparisonOrchestrator(client).run_all([], "img") == {}


def test_snapshot_returns_copies(client, fake_replicate):
    orchestrator = ComparisonOrchestrator(client)
    orchestrator.run_all(MODELS[:1], "img")

    snap = orchestrator.snapshot()
    snap["ok"].output.append("tampered")

    assert "tampered" not in orchestrator.snapshot()["ok"].output
