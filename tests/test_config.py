from stream_translate import storage
from stream_translate.config import DEFAULT_CONFIG, load_config, scheduling_options


def test_defaults_are_copied():
    cfg = load_config()
    assert cfg == DEFAULT_CONFIG
    cfg["server"]["port"] = 1
    assert DEFAULT_CONFIG["server"]["port"] == 8000


def test_file_overrides_are_merged(tmp_path):
    path = tmp_path / "config.json"
    storage.write_json(path, {"translation": {"provider": "dummy"}, "readiness": {"word_threshold": 120}})
    cfg = load_config(path)
    assert cfg["translation"]["provider"] == "dummy"
    assert cfg["translation"]["openai"]["model"] == DEFAULT_CONFIG["translation"]["openai"]["model"]
    assert cfg["readiness"]["word_threshold"] == 120


def test_scheduling_options():
    cfg = load_config()
    cfg["translation"]["scheduling"]["requests_per_minute"] = 30
    options = scheduling_options(cfg)
    assert options["max_retries"] == 2
    assert options["rate_limiter"].interval == 2.0
