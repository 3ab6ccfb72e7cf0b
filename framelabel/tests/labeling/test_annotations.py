"""
Test suite for consolidating labeling job output into training manifests.
"""

import asyncio
import json

import pytest

from framelabel.exceptions import ValidationException
from framelabel.labeling import LabelingJob, LabelingJobType
from framelabel.labeling.annotations import BOUNDING_BOX_LABELING_TYPE, parse_object_uri
from framelabel.video_pipeline.handler import handle_event
from framelabel.tests.fakes import jpeg_bytes

JOB_OUTPUT = {
    "labelingJobName": "arn:labeling-job/cats-and-dogs",
    "labelAttributeName": "animals",
    "outputDatasetUri": "s3://labels/cats-and-dogs/manifests/output/output.manifest",
}


def put_lines(storage, key, records):
    body = "\n".join(json.dumps(r) for r in records).encode("utf-8")
    asyncio.run(storage.put("labels", key, body))


def collect(providers, src):
    event = {
        "state": "collect-annotations",
        "input": src,
        "output": {"start-labeling-job": dict(JOB_OUTPUT)},
    }
    return asyncio.run(handle_event(event, providers=providers, workflow="labeling"))


def test_job_type_from_input():
    assert LabelingJobType.from_input({"labelingJobType": "bounding_box"}) == LabelingJobType.BOUNDING_BOX
    assert LabelingJobType.from_input({"trainingType": "concept"}) == LabelingJobType.CLASSIFICATION
    assert LabelingJobType.from_input({"trainingType": "object"}) == LabelingJobType.BOUNDING_BOX
    with pytest.raises(ValidationException):
        LabelingJobType.from_input({"labelingJobType": "polygon"})


def test_parse_object_uri():
    ref = parse_object_uri("s3://labels/a/b.json")

    assert (ref.bucket, ref.key) == ("labels", "a/b.json")
    with pytest.raises(ValidationException):
        parse_object_uri("s3://labels")


def test_labeling_job_from_output():
    job = LabelingJob.from_output(JOB_OUTPUT)

    assert job.name == "cats-and-dogs"
    assert job.output_dataset.key == "cats-and-dogs/manifests/output/output.manifest"
    with pytest.raises(ValidationException):
        LabelingJob.from_output({"labelingJobName": "x"})


def test_classification_drops_placeholder(providers, storage):
    put_lines(storage, "cats-and-dogs/manifests/output/output.manifest", [
        {"source-ref": "s3://media/1.jpg", "animals": 0, "animals-metadata": {"class-name": "cat"}},
        {"source-ref": "s3://media/2.jpg", "animals": 1, "animals-metadata": {"class-name": "PLACE_HOLDER"}},
    ])

    doc = collect(providers, {"bucket": "labels", "projectName": "pets", "trainingType": "concept"})

    out = doc["output"]["collect-annotations"]["output"]
    assert out["key"] == "pets/collect-annotations/consolidatedAnnotations.json"
    assert out["labelingJobType"] == "classification"
    records = asyncio.run(storage.get_json("labels", out["key"]))
    assert [r["source-ref"] for r in records] == ["s3://media/1.jpg"]


def _bounding_box_job(storage, with_keyframes=True):
    asyncio.run(storage.put_json("labels", "seq/clip/seq.json", {
        "prefix": "s3://labels/videos/clip/extract-keyframes/",
        "frames": [
            {"frame-no": 0, "frame": "10.jpg"},
            {"frame-no": 1, "frame": "20.jpg"},
        ],
    }))
    asyncio.run(storage.put_json("labels", "annotations/clip.json", {
        "detection-annotations": [
            {
                "frame-no": 0,
                "annotations": [{"class-id": 1, "top": 5, "left": 6, "width": 30, "height": 40}],
            },
            {"frame-no": 1, "annotations": []},
        ],
    }))
    asyncio.run(storage.put("labels", "videos/clip/extract-keyframes/10.jpg", jpeg_bytes(64, 48)))
    asyncio.run(storage.put("labels", "videos/clip/extract-keyframes/20.jpg", jpeg_bytes(64, 48)))
    if with_keyframes:
        asyncio.run(storage.put_json("labels", "videos/clip/extract-keyframes/keyframes.json", {
            "width": 1920,
            "height": 1080,
            "frames": [],
        }))
    put_lines(storage, "cats-and-dogs/manifests/output/output.manifest", [{
        "source-ref": "s3://labels/seq/clip/seq.json",
        "animals": "s3://labels/annotations/clip.json",
        "animals-metadata": {"class-map": {"1": "dog"}},
    }])


def test_bounding_boxes_per_frame(providers, storage):
    _bounding_box_job(storage)

    doc = collect(providers, {"bucket": "labels", "projectName": "pets", "labelingJobType": "bounding_box"})

    records = asyncio.run(storage.get_json("labels", doc["output"]["collect-annotations"]["output"]["key"]))
    [record] = records
    assert record["source-ref"] == "s3://labels/videos/clip/extract-keyframes/10.jpg"
    assert record[BOUNDING_BOX_LABELING_TYPE] == {
        "image_size": [{"width": 1920, "height": 1080, "depth": 3}],
        "annotations": [{"class_id": 1, "top": 5, "left": 6, "width": 30, "height": 40}],
    }
    metadata = record[f"{BOUNDING_BOX_LABELING_TYPE}-metadata"]
    assert metadata["class-map"] == {"1": "dog"}
    assert metadata["objects"] == [{"confidence": 1}]


def test_bounding_boxes_fall_back_to_image_size(providers, storage):
    _bounding_box_job(storage, with_keyframes=False)

    doc = collect(providers, {"bucket": "labels", "projectName": "pets", "labelingJobType": "bounding_box"})

    [record] = asyncio.run(storage.get_json("labels", doc["output"]["collect-annotations"]["output"]["key"]))
    assert record[BOUNDING_BOX_LABELING_TYPE]["image_size"] == [{"width": 64, "height": 48, "depth": 3}]


def test_missing_labeling_job_output(providers):
    event = {"state": "collect-annotations", "input": {"bucket": "labels", "projectName": "pets"}}

    with pytest.raises(ValidationException) as e:
        asyncio.run(handle_event(event, providers=providers, workflow="labeling"))
    assert "start-labeling-job" in str(e.value)
