from pydantic import ValidationError
import pytest

from bgcompare.models import (
    CATEGORY_IDS,
    MODELS,
    JobStatus,
    ModelJob,
    Record,
    ReferenceColor,
    Score,
    get_model,
    normalize_output,
)


def test_overall_is_mean_of_set_metrics():
    assert Score(edgeAccuracy=8, detailPreservation=6, transparency=7).overall == 7
    assert Score(edgeAccuracy=9, transparency=6).overall == 8  # 7.5 rounds up
    assert Score(edgeAccuracy=5).overall == 5


def test_overall_is_zero_when_nothing_scored():
    assert Score().overall == 0


def test_overall_cannot_be_supplied():
    assert Score(edgeAccuracy=4, overall=10).overall == 4


def test_score_range():
    with pytest.raises(ValidationError):
        Score(edgeAccuracy=11)


@pytest.mark.parametrize(
    "upstream, expected",
    [
        ("starting", JobStatus.STARTING),
        ("processing", JobStatus.PROCESSING),
        ("succeeded", JobStatus.SUCCEEDED),
        ("failed", JobStatus.FAILED),
        ("canceled", JobStatus.FAILED),
        (None, JobStatus.STARTING),
    ],
)
def test_status_mapping(upstream, expected):
    assert JobStatus.from_upstream(upstream) is expected


def test_terminal_statuses():
    assert {s for s in JobStatus if s.is_terminal} == {JobStatus.SUCCEEDED, JobStatus.FAILED}


def test_normalize_output():
    assert normalize_output(None) == []
    assert normalize_output("https://a.png") == ["https://a.png"]
    assert normalize_output(["https://a.png", None, "https://b.png"]) == ["https://a.png", "https://b.png"]


def test_output_is_only_trusted_on_success():
    job = ModelJob(modelId="m", status=JobStatus.PROCESSING, output=["https://partial.png"])
    assert job.trusted_output() == []
    assert job.model_copy(update={"status": JobStatus.SUCCEEDED}).trusted_output() == ["https://partial.png"]


def test_reference_color_channels_are_bytes():
    assert ReferenceColor(r=0, g=255, b=0).as_tuple() == (0, 255, 0)
    with pytest.raises(ValidationError):
        ReferenceColor(r=0, g=256, b=0)
    with pytest.raises(ValidationError):
        ReferenceColor(r=-1, g=0, b=0)


def test_record_requires_known_category_and_name():
    with pytest.raises(ValidationError):
        Record(category="landscape", name="x")
    with pytest.raises(ValidationError):
        Record(category="portrait", name="  ")
    assert Record(category="portrait", name="x").id is None


def test_registry():
    assert len({m.id for m in MODELS}) == len(MODELS)
    assert get_model(MODELS[0].id) is MODELS[0]
    assert get_model("nope") is None
    assert "fine-details" in CATEGORY_IDS
