import json

import pytest

from ciop.config import parse_build_config, parse_duration, resolve_job_spec
from ciop.errors import ConfigurationError

JOB_SPEC = {
    "type": "presubmit",
    "job": "pull-ci-origin-unit",
    "buildid": "1234",
    "prowjobid": "ignored-field",
    "refs": {
        "org": "openshift",
        "repo": "origin",
        "base_ref": "master",
        "base_sha": "deadbeef",
        "pulls": [{"number": 1, "author": "someone", "sha": "cafe"}],
    },
}


def test_parse_build_config():
    config = parse_build_config(json.dumps({
        "build_root_image": "centos:7",
        "steps": [
            {"name": "src", "commands": "make", "outputs": ["src"]},
            {"name": "unit", "commands": "make test", "inputs": ["src"], "image": "golang:1.10"},
        ],
        "rpm_build_commands": "make rpms",
        "release_tag_configuration": {"namespace": "openshift", "name": "origin-v3.10"},
    }))

    assert [s.name for s in config.steps] == ["src", "unit"]
    assert config.steps[0].timeout_seconds == 2 * 60 * 60
    assert config.steps[1].inputs == ["src"]
    assert config.release_tag_configuration.name == "origin-v3.10"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "not json",
        json.dumps({"steps": [{"name": "x"}]}),  # no commands
        json.dumps({"steps": [{"name": "Bad_Name", "commands": "true"}]}),
        json.dumps({"unknown_field": True}),
        json.dumps({"steps": [{"name": "x", "commands": "true", "timeout_seconds": 0}]}),
    ],
)
def test_invalid_build_config(raw):
    with pytest.raises(ConfigurationError):
        parse_build_config(raw)


def test_resolve_job_spec_from_env():
    spec = resolve_job_spec({"JOB_SPEC": json.dumps(JOB_SPEC)})

    assert spec.job == "pull-ci-origin-unit"
    assert spec.build_id == "1234"
    assert spec.refs["pulls"][0]["sha"] == "cafe"


def test_job_hash_is_stable_and_content_based():
    a = resolve_job_spec({"JOB_SPEC": json.dumps(JOB_SPEC)})
    b = resolve_job_spec({"JOB_SPEC": json.dumps(dict(JOB_SPEC, buildid="9999"))})
    changed = json.loads(json.dumps(JOB_SPEC))
    changed["refs"]["pulls"][0]["sha"] = "beef"
    c = resolve_job_spec({"JOB_SPEC": json.dumps(changed)})

    assert a.hash() == b.hash()
    assert a.hash() != c.hash()


def test_namespace_template():
    spec = resolve_job_spec({"JOB_SPEC": json.dumps(JOB_SPEC)})
    spec.set_namespace("ci-op-{id}")
    assert spec.namespace == f"ci-op-{spec.hash()}"
    spec.set_namespace("fixed")
    assert spec.namespace == "fixed"


@pytest.mark.parametrize("env", [{}, {"JOB_SPEC": "{"}, {"JOB_SPEC": json.dumps({"type": "periodic"})}])
def test_invalid_job_spec(env):
    with pytest.raises(ValueError):
        resolve_job_spec(env)


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, 0),
        ("", 0),
        ("0", 0),
        ("90", 90),
        (45, 45),
        ("30m", 1800),
        ("1h30m10s", 5410),
        ("1.5h", 5400),
        ("500ms", 0.5),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", ["abc", "10x", "1h 30m", "m", "inf", "nan", "-5", "-1s", -3, float("inf")])
def test_parse_duration_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_duration(value)
