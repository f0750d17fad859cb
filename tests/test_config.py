import json

import pytest

from tilestack.config import TileSettings, load_settings
from tilestack.errors import ConfigurationError


def test_defaults():
    settings = TileSettings().validate()
    assert (settings.tile_width, settings.tile_height) == (256, 256)
    assert settings.pattern == "<z>/<r>_<c>_<s>"
    assert settings.format == "jpg"
    assert settings.quality == pytest.approx(0.85)
    assert settings.pixel_type == "rgb"
    assert settings.fail_fast


def test_load_settings_merges_over_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"tile_width": 512, "format": "png", "pixel_type": "grey"}))
    settings = load_settings(path)
    assert settings.tile_width == 512
    assert settings.tile_height == 256
    assert settings.codec().pixel_type == "gray"
    assert settings.codec().extension == "png"


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[1, 2]",
        json.dumps({"tile_size": 3}),
        json.dumps({"tile_height": 0}),
        json.dumps({"pattern": "<z>/<r>_<c>"}),
        json.dumps({"quality": 2}),
        json.dumps({"format": "gif"}),
    ],
)
def test_invalid_settings_rejected(tmp_path, content):
    path = tmp_path / "settings.json"
    path.write_text(content)
    with pytest.raises(ConfigurationError):
        load_settings(path)


def test_missing_settings_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_settings(tmp_path / "nope.json")


def test_replace_ignores_unset_values():
    settings = TileSettings().replace(tile_width=None, workers=4)
    assert settings.tile_width == 256
    assert settings.workers == 4


def test_store_needs_base_path(tmp_path):
    with pytest.raises(ConfigurationError):
        TileSettings().store()
    store = TileSettings(base_path=str(tmp_path), format="tif").store()
    assert store.base_path == tmp_path
    assert store.codec.extension == "tif"


def test_workers_must_be_positive():
    with pytest.raises(ConfigurationError):
        TileSettings(workers=0).validate()
