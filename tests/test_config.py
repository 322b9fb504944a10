import importlib

from moviegraph_rec import config


def test_env_overrides_and_validation(monkeypatch):
    monkeypatch.setenv("MOVIEGRAPH_CONNECTION_TIMEOUT", "12.5")
    monkeypatch.setenv("MOVIEGRAPH_RETRY_DELAY", "-1")  # should clamp to min
    monkeypatch.setenv("MOVIEGRAPH_MAX_CONCURRENT", "0")  # min clamp

    cfg = importlib.reload(config)

    assert cfg.NEO4J_CONNECTION_TIMEOUT == 12.5
    assert cfg.NEO4J_RETRY_DELAY == 0.0
    assert cfg.DEFAULT_MAX_CONCURRENT == 1


def test_paths_respect_env(fresh_config, tmp_path):
    assert fresh_config.RECOMMENDATIONS_DIR == tmp_path / "recommendations"


def test_invalid_env_values_fall_back_to_defaults(monkeypatch):
    # Use clearly invalid strings to exercise the ValueError branches
    monkeypatch.setenv("MOVIEGRAPH_CONNECTION_TIMEOUT", "not-a-float")
    monkeypatch.setenv("MOVIEGRAPH_MAX_RETRIES", "oops")
    monkeypatch.setenv("MOVIEGRAPH_MAX_CONCURRENT", "bad-int")

    cfg = importlib.reload(config)

    assert cfg.NEO4J_CONNECTION_TIMEOUT == 30.0
    assert cfg.NEO4J_MAX_RETRIES == 3
    assert cfg.DEFAULT_MAX_CONCURRENT == 8


def test_neo4j_settings_have_no_credential_defaults(monkeypatch):
    for name in ("NEO4J_URI", "NEO4J_USER", "NEO4J_PASSWORD", "NEO4J_DATABASE"):
        monkeypatch.delenv(name, raising=False)

    cfg = importlib.reload(config)

    assert cfg.NEO4J_URI is None
    assert cfg.NEO4J_USER is None
    assert cfg.NEO4J_PASSWORD is None
    assert cfg.NEO4J_DATABASE == "neo4j"
