from __future__ import annotations

import json
import os

import pytest

from toolscript.events import open_event_sink
from toolscript.exceptions import ConfigurationError


def test_file_sink_appends_json_lines(tmp_path) -> None:
    path = tmp_path / "events.jsonl"
    path.write_text('{"type":"earlier"}\n', encoding="utf-8")

    sink = open_event_sink(str(path))
    sink.emit("runStart", {"runID": "r1"})
    sink.emit("runFinish", {"runID": "r1", "output": "x"})
    sink.close()
    sink.emit("ignored", {})

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["type"] for line in lines] == ["earlier", "runStart", "runFinish"]
    assert lines[1]["runID"] == "r1"
    assert lines[1]["time"].endswith("Z")


@pytest.mark.skipif(os.name == "nt", reason="POSIX descriptors")
def test_descriptor_sink_writes_to_duplicate(tmp_path) -> None:
    read_fd, write_fd = os.pipe()
    try:
        sink = open_event_sink(f"fd://{write_fd}")
        sink.emit("ping", {"n": 1})
        sink.close()
        # The original descriptor stays open after the sink closes.
        os.write(write_fd, b"")
    finally:
        os.close(write_fd)
    with os.fdopen(read_fd, "rb") as reader:
        event = json.loads(reader.read().decode("utf-8"))
    assert event["type"] == "ping" and event["n"] == 1


@pytest.mark.parametrize("target", ["fd://nope", "fd://-1"])
def test_bad_descriptor_is_configuration_error(target: str) -> None:
    with pytest.raises(ConfigurationError):
        open_event_sink(target)


def test_unopenable_path_is_configuration_error(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        open_event_sink(str(tmp_path / "no" / "such" / "dir" / "events"))
