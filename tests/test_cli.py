import numpy as np
import pandas as pd
import pytest
import tifffile

from tilestack.addressing import TileAddress
from tilestack.cli import main
from tilestack.errors import TileWriteError
from tilestack.store import TileStore


@pytest.fixture
def source(tmp_path):
    root = tmp_path / "sections"
    root.mkdir()
    for z in range(3):
        tifffile.imwrite(root / f"{z:02d}.tif", np.full((20, 24), 10 * (z + 1), dtype=np.uint8))
    return root


def common(out):
    return ["--out", str(out), "--tile-size", "8", "8", "--format", "png", "--type", "gray"]


def tile_file(out, s, z, r, c):
    return out / str(z) / f"{r}_{c}_{s}.png"


def test_full_exports_and_scales(source, tmp_path):
    out = tmp_path / "tiles"
    assert main(["full", "--source", str(source)] + common(out)) == 0

    for z in range(3):
        for r in range(3):
            for c in range(3):
                assert tile_file(out, 0, z, r, c).is_file()
        assert tile_file(out, 1, z, 1, 1).is_file()
        assert not tile_file(out, 1, z, 2, 0).exists()
        assert tile_file(out, 2, z, 0, 0).is_file()
        assert not tile_file(out, 3, z, 0, 0).exists()


def test_tile_then_scale(source, tmp_path):
    out = tmp_path / "tiles"
    args = ["--source", str(source), "--orientation", "xz", "--z-range", "0", "1"]
    assert main(["tile"] + args + common(out)) == 0
    # xz: 24 wide, 3 high, 20 sections; only sections 0 and 1 requested
    assert tile_file(out, 0, 1, 0, 2).is_file()
    assert not tile_file(out, 0, 2, 0, 0).exists()

    assert main(["scale", "--max-scale", "1", "--workers", "2"] + common(out)) == 0
    assert tile_file(out, 1, 0, 0, 1).is_file()
    assert not tile_file(out, 1, 2, 0, 0).exists()


def test_configuration_error_exit_status(source, tmp_path):
    out = tmp_path / "tiles"
    argv = ["tile", "--source", str(source), "--pattern", "<z>/<r>"] + common(out)
    assert main(argv) == 2
    assert main(["tile", "--source", str(tmp_path / "missing")] + common(out)) == 2


def test_failures_are_reported_and_retried(source, tmp_path, monkeypatch):
    out = tmp_path / "tiles"
    report_csv = tmp_path / "report.csv"
    original_write = TileStore.write

    def flaky_write(self, address, buffer):
        if address == TileAddress(0, 1, 2, 0):
            raise TileWriteError("disk full", address, self.path(address))
        return original_write(self, address, buffer)

    monkeypatch.setattr(TileStore, "write", flaky_write)
    argv = ["tile", "--source", str(source), "--keep-going", "--report", str(report_csv)]
    assert main(argv + common(out)) == 1

    df = pd.read_csv(report_csv)
    assert df[["s", "z", "r", "c"]].values.tolist() == [[0, 1, 2, 0]]
    assert not tile_file(out, 0, 1, 2, 0).exists()
    assert tile_file(out, 0, 1, 2, 1).is_file()

    monkeypatch.setattr(TileStore, "write", original_write)
    retry = ["tile", "--source", str(source), "--retry-report", str(report_csv)]
    assert main(retry + common(out)) == 0
    assert tile_file(out, 0, 1, 2, 0).is_file()


def test_fail_fast_exit_status(source, tmp_path, monkeypatch):
    def broken_write(self, address, buffer):
        raise TileWriteError("read-only", address, self.path(address))

    monkeypatch.setattr(TileStore, "write", broken_write)
    report_csv = tmp_path / "report.csv"
    argv = ["tile", "--source", str(source), "--report", str(report_csv)]
    assert main(argv + common(tmp_path / "tiles")) == 1
    assert len(pd.read_csv(report_csv)) == 1


def test_scale_without_sections_warns(tmp_path, caplog):
    out = tmp_path / "tiles"
    (out / "5").mkdir(parents=True)
    assert main(["scale"] + common(out)) == 0
    warnings = [r for r in caplog.records if r.levelname == "WARNING"]
    assert any("--z-range" in r.getMessage() for r in warnings)
