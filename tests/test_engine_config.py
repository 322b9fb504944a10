import json
import logging

import pytest

from moviegraph_rec.engine_config import EngineConfig


def test_defaults():
    cfg = EngineConfig()

    assert cfg.min_rating == 4.0
    assert cfg.runtime_proximity == 10
    assert cfg.use_runtime_filter is True
    assert (cfg.default_runtime_min, cfg.default_runtime_max) == (0, 300)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_rating": 0},
        {"runtime_proximity": -5},
        {"default_runtime_min": -1},
        {"default_runtime_min": 200, "default_runtime_max": 100},
    ],
)
def test_invalid_values_raise(kwargs):
    with pytest.raises(ValueError):
        EngineConfig(**kwargs)


def test_from_file_applies_overrides_and_ignores_unknown(tmp_path, caplog):
    path = tmp_path / "engine.json"
    path.write_text(json.dumps({"runtime_proximity": 15, "describe_people": False, "mystery": 1}))
    caplog.set_level(logging.WARNING)

    cfg = EngineConfig.from_file(path)

    assert cfg.runtime_proximity == 15
    assert cfg.describe_people is False
    assert cfg.min_rating == 4.0
    assert "mystery" in caplog.text


def test_from_file_rejects_non_object(tmp_path):
    path = tmp_path / "engine.json"
    path.write_text("[1, 2]")

    with pytest.raises(ValueError):
        EngineConfig.from_file(path)
