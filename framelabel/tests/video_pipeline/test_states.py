"""
Test suite for the video pipeline steps, driven through handle_event the way the
orchestrator calls them: probe -> extract (map) -> postproc -> model lease ->
detection loop || sprite planning -> sprites (map) -> shot mapping -> completion.
"""

import asyncio
import io
import json

import pytest
from PIL import Image

from framelabel.exceptions import ValidationException
from framelabel.video_pipeline.handler import handle_event
from framelabel.video_pipeline.states import StepContext, make_output_path
from framelabel.video_pipeline.states.base_state import (
    merge_multi_state_outputs,
    unwrap_nested_output,
)
from framelabel.tests.fakes import FakeMedia, FakeOracle, make_frames

NOW = 1_700_000_000.0
VIDEO_INPUT = {
    "bucket": "media",
    "key": "videos/clip.mp4",
    "projectArn": "proj-1",
    "projectVersionArn": "projects/proj-1/versions/v1",
}


def frame_labels(key: str):
    stem = key.rsplit("/", 1)[-1].split(".")[0]
    if not stem.isdigit():
        return []
    frame_number = int(stem)
    labels = []
    if frame_number % 2 == 0:
        labels += ["cat", "cat"]
    if frame_number % 3 == 0:
        labels.append("dog")
    return labels


@pytest.fixture
def oracle():
    return FakeOracle(frame_labels)


@pytest.fixture
def media():
    # 25 keyframes, 5s apart: 0 .. 120000 ms
    return FakeMedia(make_frames(25, 5000))


@pytest.fixture
def context():
    return StepContext(remaining_time_millis=15 * 60 * 1000, clock=lambda: NOW)


@pytest.fixture
def step(providers, media, context):
    def run(event, workflow="video"):
        return asyncio.run(handle_event(event, context, providers, media, workflow=workflow))
    return run


@pytest.fixture
def probed(step, storage):
    asyncio.run(storage.put("media", "videos/clip.mp4", b"fake-video"))
    return step({"state": "probe-video", "input": dict(VIDEO_INPUT)})


@pytest.fixture
def extracted(step, probed):
    iterators = probed["output"]["extract-keyframes"]["iterators"]
    counts = [step({"state": "extract-keyframes", "input": it}) for it in iterators]
    doc = json.loads(json.dumps(probed))
    doc["output"]["extract-keyframes"]["iterators"] = counts
    return step({**doc, "state": "extract-keyframes-postproc"})


@pytest.fixture
def leased(step, extracted):
    return step({**extracted, "state": "project-version-started"})


def test_make_output_path():
    assert make_output_path("videos/My Clip (1).mp4", "extract-keyframes") == "videos/MyClip1/extract-keyframes"
    assert make_output_path("clip.mp4", "detect-custom-labels") == "clip/detect-custom-labels"


def test_probe_video(probed, storage):
    state = probed["output"]["extract-keyframes"]

    assert state["output"]["prefix"] == "videos/clip/extract-keyframes"
    assert state["output"]["streamInfo"] == {"duration": 120000, "width": 192, "height": 108}
    assert [(it["index"], it["startIndex"], it["framesPerSlice"]) for it in state["iterators"]] == [
        (0, 0, 10),
        (1, 10, 10),
        (2, 20, 5),
    ]
    assert "t0" in state["metrics"] and "t1" in state["metrics"]

    keyframes = asyncio.run(storage.get_json("media", "videos/clip/extract-keyframes/keyframes.json"))
    assert len(keyframes["frames"]) == 25
    assert keyframes["frames"][1] == {"frameNumber": 1, "timestampMillis": 5000, "timecodeSMPTE": None}


def test_extract_keyframes_uploads_every_frame(extracted, storage, media):
    keys = asyncio.run(storage.list("media", "videos/clip/extract-keyframes/"))

    assert len([k for k in keys if k.endswith(".jpg")]) == 25
    assert media.extract_calls[2] == [20, 21, 22, 23, 24]
    assert extracted["output"]["extract-keyframes"]["output"]["totalFrames"] == 25
    assert "iterators" not in extracted["output"]["extract-keyframes"]


def test_extract_keyframes_postproc_rejects_unfinished_iterators(step, probed):
    with pytest.raises(ValidationException):
        step({**probed, "state": "extract-keyframes-postproc"})


def test_project_version_started_sets_lease(leased, lease_store):
    started = leased["output"]["project-version-started"]

    # 25 frames at 5 TPS still reserve the 2 minute minimum
    assert started["ttl"] == int(NOW) + 120
    assert started["inferenceUnits"] == 1
    assert asyncio.run(lease_store.get("projects/proj-1/versions/v1")) == int(NOW) + 120


def test_detect_custom_labels_completes(step, leased, storage, oracle):
    doc = step({"state": "detect-custom-labels", "nestedStateOutput": leased})
    detect = doc["output"]["detect-custom-labels"]

    assert detect["status"] == "completed"
    assert detect["cursor"] == 25
    assert detect["output"] == {"bucket": "media", "prefix": "videos/clip/detect-custom-labels"}
    assert len(oracle.calls) == 25
    assert oracle.calls[0] == "videos/clip/extract-keyframes/0.jpg"

    detection = asyncio.run(storage.get_json("media", "videos/clip/detect-custom-labels/6.json"))
    assert [label["Name"] for label in detection["CustomLabels"]] == ["cat", "cat", "dog"]


def test_detect_custom_labels_loops_until_completed(providers, media, leased, oracle):
    # the 30s deadline margin leaves room for a single batch
    clock_readings = iter([NOW, NOW + 2])
    context = StepContext(remaining_time_millis=32 * 1000, clock=lambda: next(clock_readings, NOW + 60), started_at=NOW)

    first = asyncio.run(handle_event({**leased, "state": "detect-custom-labels"}, context, providers, media))
    assert first["output"]["detect-custom-labels"]["status"] == "processing"
    assert first["output"]["detect-custom-labels"]["cursor"] == 5

    later = StepContext(remaining_time_millis=15 * 60 * 1000, clock=lambda: NOW)
    second = asyncio.run(handle_event({**first, "state": "detect-custom-labels"}, later, providers, media))
    assert second["output"]["detect-custom-labels"]["status"] == "completed"
    assert second["output"]["detect-custom-labels"]["cursor"] == 25
    assert len(oracle.calls) == 25


def test_new_analysis_of_same_video_classifies_every_frame_again(step, leased, storage, oracle):
    step({"state": "detect-custom-labels", "nestedStateOutput": leased})

    other_model = {**leased["input"], "projectVersionArn": "projects/proj-1/versions/v2"}
    relaunched = step({**leased, "input": other_model, "state": "project-version-started"})
    first_run = leased["output"]["project-version-started"]["runId"]
    assert relaunched["output"]["project-version-started"]["runId"] != first_run

    oracle.labels_for = lambda key: ["bird"]
    doc = step({"state": "detect-custom-labels", "nestedStateOutput": relaunched})

    assert doc["output"]["detect-custom-labels"]["status"] == "completed"
    assert len(oracle.calls) == 50
    detection = asyncio.run(storage.get_json("media", "videos/clip/detect-custom-labels/6.json"))
    assert [label["Name"] for label in detection["CustomLabels"]] == ["bird"]


def test_sprites_and_shot_mapping(step, leased, storage):
    detected = step({"state": "detect-custom-labels", "nestedStateOutput": leased})

    planned = step({**leased, "state": "create-sprite-images-preproc"})
    sprite_state = planned["output"]["create-sprite-images"]
    assert sprite_state["output"]["sprite"] == {"width": 96, "height": 54, "maxPerRow": 20}
    assert [(it["index"], it["startIndex"], it["framesPerSlice"]) for it in sprite_state["iterators"]] == [
        (0, 0, 13),
        (1, 13, 12),
    ]

    names = [step({"state": "create-sprite-images", "input": it}) for it in sprite_state["iterators"]]
    assert names == ["0.jpg", "1.jpg"]
    sheet = Image.open(io.BytesIO(asyncio.run(storage.get("media", "videos/clip/create-sprite-images/0.jpg"))))
    assert sheet.size == (13 * 96, 54)

    sprite_branch = json.loads(json.dumps(planned))
    sprite_branch["output"]["create-sprite-images"]["iterators"] = names
    mapped = step({"state": "map-frames-shots", "multiStateOutputs": [detected, sprite_branch]})

    assert "iterators" not in mapped["output"]["create-sprite-images"]
    assert mapped["output"]["detect-custom-labels"]["status"] == "completed"
    shots = mapped["output"]["map-frames-shots"]["output"]
    assert shots == {"bucket": "media", "key": "videos/clip/map-frames-shots/mapFramesShots.json"}

    windows = asyncio.run(storage.get_json("media", shots["key"]))
    assert [(w["minIndex"], w["startTime"], w["endTime"]) for w in windows] == [
        (0, 0, 60000),
        (1, 60000, 120000),
    ]
    assert windows[0]["frames"] == list(range(13))
    assert windows[0]["customLabels"]["cat"] == [0, 2, 4, 6, 8, 10, 12]
    assert windows[1]["customLabels"]["dog"] == [15, 18, 21, 24]

    done = step({
        "state": "job-completed",
        "nestedStateOutput": {"ExecutionArn": "exec-1", "Output": json.dumps(mapped)},
    })
    artifacts = done["output"]["job-completed"]["output"]
    assert artifacts["shots"] == shots
    assert artifacts["keyframes"]["totalFrames"] == 25
    assert artifacts["sprites"]["prefix"] == "videos/clip/create-sprite-images"


def test_map_frames_shots_tolerates_missing_detections(step, leased, storage):
    doc = json.loads(json.dumps(leased))
    doc["output"]["detect-custom-labels"] = {
        "status": "completed",
        "output": {"bucket": "media", "prefix": "videos/clip/detect-custom-labels"},
    }
    asyncio.run(storage.put_json("media", "videos/clip/detect-custom-labels/3.json", {
        "FrameNumber": 3,
        "TimestampMillis": 15000,
        "CustomLabels": [{"Name": "dog", "Confidence": 88.0}],
    }))

    mapped = step({"state": "map-frames-shots", "multiStateOutputs": [doc]})

    windows = asyncio.run(storage.get_json("media", mapped["output"]["map-frames-shots"]["output"]["key"]))
    assert windows[0]["customLabels"] == {"dog": [3]}


def test_missing_input_fields(step):
    with pytest.raises(ValidationException) as e:
        step({"state": "probe-video", "input": {"bucket": "media"}})
    assert "key" in str(e.value)


def test_unknown_state(step):
    with pytest.raises(ValidationException) as e:
        step({"state": "transcode", "input": dict(VIDEO_INPUT)})
    assert str(e.value) == "transcode not impl"


def test_image_workflow(step, storage, oracle, lease_store):
    asyncio.run(storage.put("media", "images/photo 1.jpg", b"jpeg"))
    leased = step({"state": "project-version-started", "input": {**VIDEO_INPUT, "key": "images/photo 1.jpg"}},
                  workflow="image")

    doc = step({"state": "detect-custom-labels", "nestedStateOutput": {"Output": json.dumps(leased)}},
               workflow="image")

    out = doc["output"]["detect-custom-labels"]["output"]
    assert out == {"bucket": "media", "key": "images/photo1/detect-custom-labels/photo 1.json"}
    assert asyncio.run(storage.get_json("media", out["key"])) == {"CustomLabels": []}
    assert oracle.calls == ["images/photo 1.jpg"]


def test_unwrap_nested_output():
    doc = {"input": {"a": 1}, "output": {}}

    assert unwrap_nested_output({"state": "s", "nestedStateOutput": doc}) == {**doc, "state": "s"}
    assert unwrap_nested_output({"state": "s", "nestedStateOutput": {"Output": json.dumps(doc)}}) == {
        **doc,
        "state": "s",
    }
    assert unwrap_nested_output(doc) is doc


def test_merge_multi_state_outputs_later_branch_wins():
    merged = merge_multi_state_outputs({
        "state": "map-frames-shots",
        "multiStateOutputs": [
            {"input": {"a": 1}, "output": {"x": {"v": 1}, "y": {"v": 1}}},
            {"input": {"b": 2}, "output": {"y": {"v": 2}}},
        ],
    })

    assert merged == {
        "state": "map-frames-shots",
        "input": {"a": 1, "b": 2},
        "output": {"x": {"v": 1}, "y": {"v": 2}},
    }
