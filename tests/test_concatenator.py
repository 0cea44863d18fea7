import pytest

from merger import quality
from merger.concatenator import (
    Manifest,
    build_concat_args,
    concatenate,
    output_name,
    write_manifest,
)
from merger.errors import EngineError, ManifestError, ResourceError
from merger.normalizer import NormalizedAsset
from merger.workspace import open_workspace

from .conftest import FakeEngine


def _normalized(ws, contents):
    out = []
    for i, data in enumerate(contents):
        path = ws.path_for(f"normalized_{i}.mp4")
        path.write_bytes(data)
        out.append(NormalizedAsset(i, path))
    return out


def test_manifest_lists_entries_in_input_order(scratch_root):
    with open_workspace("c1", scratch_root) as ws:
        assets = _normalized(ws, [b"a", b"b", b"c"])
        manifest = Manifest.from_assets(list(reversed(assets)))
        lines = manifest.render().splitlines()
        assert lines == [f"file '{a.path.resolve()}'" for a in assets]


def test_manifest_escapes_single_quotes(tmp_path):
    path = tmp_path / "it's.mp4"
    assert Manifest((path,)).render() == "file '" + str(path).replace("'", "'\\''") + "'\n"


def test_empty_manifest_fails_before_engine(scratch_root):
    engine = FakeEngine()
    with open_workspace("c2", scratch_root) as ws:
        with pytest.raises(ManifestError):
            concatenate([], quality.resolve(None), engine, ws, "c2")
    assert engine.manifest_text is None


def test_missing_entry_fails_before_engine(scratch_root):
    engine = FakeEngine()
    with open_workspace("c3", scratch_root) as ws:
        assets = _normalized(ws, [b"a", b"b"])
        assets[1].path.unlink()
        with pytest.raises(ResourceError):
            concatenate(assets, quality.resolve(None), engine, ws, "c3")
    assert engine.manifest_text is None


def test_write_manifest_registers_file(scratch_root):
    with open_workspace("c4", scratch_root) as ws:
        assets = _normalized(ws, [b"a", b"b"])
        path = write_manifest(Manifest.from_assets(assets), ws)
        assert path in ws.registered
        assert path.read_text(encoding="utf-8").count("file '") == 2


def test_mp4_output_is_a_stream_copy():
    args = build_concat_args(quality.resolve({"format": "mp4"}))
    assert args[:2] == ["-c", "copy"]


def test_webm_output_reencodes_to_vp9_opus():
    args = build_concat_args(quality.resolve({"format": "webm", "compression_tier": 1}))
    assert "copy" not in args
    assert args[args.index("-c:v") + 1] == "libvpx-vp9"
    assert args[args.index("-c:a") + 1] == "libopus"
    assert args[args.index("-cpu-used") + 1] == "5"
    assert args[args.index("-b:v") + 1] == "2500k"
    assert args[args.index("-b:a") + 1] == quality.OUTPUT_FORMATS["webm"].audio_bitrate == "128k"


def test_webm_megabit_bitrate_reaches_encoder_as_kbps():
    args = build_concat_args(quality.resolve({"format": "webm", "bitrate": "5M"}))
    assert args[args.index("-b:v") + 1] == "5000k"


def test_mov_output_reencodes_to_prores():
    args = build_concat_args(quality.resolve({"format": "mov"}))
    assert args[args.index("-c:v") + 1] == "prores_ks"
    assert args[args.index("-c:a") + 1] == "pcm_s16le"


def test_output_name_is_unique_per_job():
    params = quality.resolve({"format": "webm"})
    assert output_name("job-1", params) == "merged_job-1.webm"
    assert output_name("job-1", params) != output_name("job-2", params)


def test_concatenate_joins_in_order(scratch_root):
    engine = FakeEngine()
    with open_workspace("c5", scratch_root) as ws:
        assets = _normalized(ws, [b"1", b"2", b"3"])
        out = concatenate(assets, quality.resolve(None), engine, ws, "c5")
        assert out.read_bytes() == b"123"
        assert out.name == "merged_c5.mp4"
        assert out in ws.registered
    assert not out.exists()


def test_engine_failure_hides_diagnostics(scratch_root):
    engine = FakeEngine(fail_concat=True)
    with open_workspace("c6", scratch_root) as ws:
        assets = _normalized(ws, [b"1", b"2"])
        with pytest.raises(EngineError) as exc:
            concatenate(assets, quality.resolve(None), engine, ws, "c6")
    err = exc.value
    assert err.stage == "concat"
    assert "Non-monotonous DTS" in err.stderr
    assert "Non-monotonous DTS" not in err.message
    assert err.as_dict() == {"kind": "engine", "message": err.message}
