import pytest

from stream_translate import storage


def test_json_round_trip_creates_parent_dirs(tmp_path):
    path = tmp_path / "out" / "nested" / "result.json"
    storage.write_json(path, {"title": "Título", "notices": []})
    assert storage.read_json(path) == {"title": "Título", "notices": []}
    assert "Título" in storage.read_text(path)


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        storage.read_text(tmp_path / "absent.html")
