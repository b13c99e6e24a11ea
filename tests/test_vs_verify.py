import importlib
import json

import pytest

import vs_verify
from veo_factory import build_veo
import veosig.config
from veosig.config import Config


@pytest.fixture(autouse=True)
def log_file(tmp_path, monkeypatch):
    path = tmp_path / "logs" / "veosig.log"
    monkeypatch.setattr(Config, "LOG_FILE", str(path))
    return path


def test_main_pass_and_results_file(tmp_path, capsys, signer):
    veo = tmp_path / "good.veo"
    veo.write_bytes(build_veo(signers=[signer]))
    results = tmp_path / "results.json"

    assert vs_verify.main([str(veo), "-o", str(results)]) == 0

    out = capsys.readouterr().out
    assert "Result: PASS" in out
    assert "Checked 1 VEO(s), 0 failed signature checks." in out
    [record] = json.loads(results.read_text())
    assert record["veo"] == str(veo)
    assert record["passed"] is True
    assert record["diagnostics"][-1] == {
        "severity": "info", "location": None, "message": "All signatures tested are valid",
    }


def test_main_reports_failures(tmp_path, capsys, signer, second_signer):
    good = tmp_path / "good.veo"
    good.write_bytes(build_veo(signers=[signer]))
    bad = tmp_path / "bad.veo"
    bad.write_bytes(build_veo(signers=[signer, second_signer], corrupt=[1]))

    results = tmp_path / "results.json"
    assert vs_verify.main([str(good), str(bad), str(tmp_path / "missing.veo"), "-o", str(results)]) == 1

    out = capsys.readouterr().out
    assert f"FAILED: {bad}" in out
    assert f"FAILED: {good}" not in out
    assert "Checked 3 VEO(s), 2 failed signature checks." in out


def test_one_layer_flag(tmp_path, signer, second_signer):
    veo = tmp_path / "outer-only.veo"
    veo.write_bytes(build_veo(signers=[signer, second_signer], corrupt=[1]))
    results = tmp_path / "results.json"

    assert vs_verify.main([str(veo), "--one-layer", "-o", str(results)]) == 0
    [record] = json.loads(results.read_text())
    assert record["one_layer"] is True


def test_save_signature_results(tmp_path):
    path = tmp_path / "out.json"
    assert vs_verify.save_signature_results(str(path), [{"veo": "a.veo", "passed": False}])
    assert json.loads(path.read_text()) == [{"veo": "a.veo", "passed": False}]
    assert not vs_verify.save_signature_results(str(tmp_path / "no" / "such" / "dir.json"), [])


def test_importing_config_creates_no_directories(tmp_path, monkeypatch):
    monkeypatch.setenv("VEOSIG_OUTPUT_DIR", str(tmp_path / "never"))
    reloaded = importlib.reload(veosig.config)
    try:
        assert reloaded.Config.OUTPUT_DIR == tmp_path / "never"
        assert not (tmp_path / "never").exists()
    finally:
        monkeypatch.delenv("VEOSIG_OUTPUT_DIR")
        importlib.reload(veosig.config)


def test_main_creates_log_directory(tmp_path, log_file, signer):
    veo = tmp_path / "good.veo"
    veo.write_bytes(build_veo(signers=[signer]))
    assert not log_file.parent.exists()

    assert vs_verify.main([str(veo), "-o", str(tmp_path / "results.json")]) == 0
    assert log_file.parent.is_dir()
