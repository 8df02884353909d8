from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
import typer
from typer.testing import CliRunner

from fibengine import main as main_mod
from fibengine.error_msg import ServiceUnavailable
from fibengine.features import OperationResult


@pytest.mark.unit
def test_feature_or_exit_unknown():
    with pytest.raises(typer.Exit):
        main_mod._feature_or_exit("does-not-exist")


@pytest.mark.unit
def test_handle_cli_result_exit_codes():
    with pytest.raises(typer.Exit) as excinfo:
        main_mod._handle_cli_result("read", OperationResult.fail("boom"))
    assert excinfo.value.exit_code == 1
    with pytest.raises(typer.Exit) as excinfo:
        main_mod._handle_cli_result("read", OperationResult.fail("fibengine is in use", busy=True))
    assert excinfo.value.exit_code == main_mod.BUSY_EXIT_CODE
    assert main_mod._handle_cli_result("read", OperationResult.ok({"v": 1})) == {"v": 1}


@pytest.mark.unit
def test_read_and_fast_commands_print_values(capsys: pytest.CaptureFixture[str]):
    main_mod.read(10, whence="set", debug=False, verbose=False)
    assert capsys.readouterr().out.strip() == "55"

    main_mod.read(0, whence="end", debug=False, verbose=True)
    assert capsys.readouterr().out.strip().startswith("1394")

    main_mod.fast(50, debug=False)
    assert capsys.readouterr().out.strip() == "12586269025"


@pytest.mark.unit
def test_sequence_command_prints_client_lines(capsys: pytest.CaptureFixture[str]):
    main_mod.sequence(upto=3, debug=False)
    lines = capsys.readouterr().out.strip().splitlines()
    assert lines == [
        "Reading from fibengine at offset 0, returned the sequence 0.",
        "Reading from fibengine at offset 1, returned the sequence 1.",
        "Reading from fibengine at offset 2, returned the sequence 1.",
        "Reading from fibengine at offset 3, returned the sequence 2.",
    ]


@pytest.mark.unit
def test_cli_runner_end_to_end():
    runner = CliRunner()
    result = runner.invoke(main_mod.app, ["read", "100", "--whence", "end"])
    assert result.exit_code == 0
    value = result.stdout.strip().splitlines()[-1]
    assert len(value) == 84
    assert value.startswith("1760236806")

    result = runner.invoke(main_mod.app, ["read", "5", "--whence", "sideways"])
    assert result.exit_code == 1

    result = runner.invoke(main_mod.app, ["fast", "--", "-1"])
    assert result.exit_code == 1

    result = runner.invoke(main_mod.app, ["sequence", "--upto", "-1"])
    assert result.exit_code == 1


@pytest.mark.unit
def test_busy_feature_exits_with_busy_code(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(
        main_mod,
        "_feature_or_exit",
        lambda _name: SimpleNamespace(handler=lambda **kwargs: OperationResult.fail("fibengine is in use", busy=True)),
    )
    with pytest.raises(typer.Exit) as excinfo:
        main_mod.read(1, whence="set", debug=False, verbose=False)
    assert excinfo.value.exit_code == main_mod.BUSY_EXIT_CODE


@pytest.mark.unit
def test_handler_crash_exits_one(monkeypatch: pytest.MonkeyPatch):
    def explode(**kwargs):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(main_mod, "_feature_or_exit", lambda _name: SimpleNamespace(handler=explode))
    with pytest.raises(typer.Exit) as excinfo:
        main_mod.handle_cli_feature("read", index=1)
    assert excinfo.value.exit_code == 1


@pytest.mark.unit
def test_serve_runs_uvicorn(monkeypatch: pytest.MonkeyPatch):
    called: dict[str, object] = {}
    monkeypatch.setattr(
        main_mod.uvicorn,
        "run",
        lambda app, host, port: called.update({"app": app, "host": host, "port": port}),
    )
    main_mod.serve(host="127.0.0.1", port=9001, debug=False)
    assert called == {"app": main_mod.api_app, "host": "127.0.0.1", "port": 9001}


@pytest.mark.unit
def test_setup_logging_levels():
    main_mod.setup_logging(debug=True)
    assert logging.getLogger().level == logging.DEBUG
    main_mod.setup_logging(verbose=True)
    assert logging.getLogger().level == main_mod.VERBOSE_LEVEL
    main_mod.setup_logging()
    root = logging.getLogger()
    assert root.level == logging.INFO
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, main_mod.ElapsedMsFormatter)


@pytest.mark.unit
def test_elapsed_formatter_prefix():
    formatter = main_mod.ElapsedMsFormatter("%(elapsed)s %(message)s")
    record = logging.LogRecord("fibengine", logging.INFO, __file__, 1, "hello", None, None)
    text = formatter.format(record)
    assert text.startswith("[")
    assert text.endswith("ms] hello")


@pytest.mark.unit
def test_api_version_and_fast(api_client: TestClient):
    version_resp = api_client.get("/api/v1/version")
    assert version_resp.status_code == 200
    assert "version" in version_resp.json()

    fast_resp = api_client.get("/api/v1/fast/10")
    assert fast_resp.status_code == 200
    assert fast_resp.json() == {"index": 10, "value": 55, "exact": True}

    assert api_client.get("/api/v1/fast/-1").status_code == 400


@pytest.mark.unit
def test_api_session_flow(api_client: TestClient):
    opened = api_client.post("/api/v1/sessions")
    assert opened.status_code == 200
    session_id = opened.json()["session_id"]
    assert opened.json()["cursor"] == 0

    assert api_client.post("/api/v1/sessions").status_code == 409

    read_zero = api_client.get(f"/api/v1/sessions/{session_id}/read")
    assert read_zero.json() == {"index": 0, "value": "0", "length": 1}

    seek = api_client.post(f"/api/v1/sessions/{session_id}/seek", json={"offset": 10})
    assert seek.json() == {"cursor": 10}
    read_ten = api_client.get(f"/api/v1/sessions/{session_id}/read")
    assert read_ten.json() == {"index": 10, "value": "55", "length": 2}

    seek_end = api_client.post(
        f"/api/v1/sessions/{session_id}/seek",
        json={"offset": 0, "whence": "end"},
    )
    assert seek_end.json() == {"cursor": 500}
    read_max = api_client.get(f"/api/v1/sessions/{session_id}/read").json()
    assert read_max["length"] == 105
    assert read_max["value"].startswith("1394")

    clamped = api_client.post(f"/api/v1/sessions/{session_id}/seek", json={"offset": -10})
    assert clamped.json() == {"cursor": 0}

    bad_whence = api_client.post(
        f"/api/v1/sessions/{session_id}/seek",
        json={"offset": 1, "whence": "sideways"},
    )
    assert bad_whence.status_code == 400

    written = api_client.post(f"/api/v1/sessions/{session_id}/write", json={"data": "ignored"})
    assert written.json() == {"written": 1}

    assert api_client.delete(f"/api/v1/sessions/{session_id}").json() == {"closed": True}
    assert api_client.delete(f"/api/v1/sessions/{session_id}").status_code == 404
    assert api_client.get(f"/api/v1/sessions/{session_id}/read").status_code == 404

    reopened = api_client.post("/api/v1/sessions")
    assert reopened.status_code == 200
    api_client.delete(f"/api/v1/sessions/{reopened.json()['session_id']}")


@pytest.mark.unit
def test_api_unknown_session(api_client: TestClient):
    assert api_client.get("/api/v1/sessions/nope/read").status_code == 404
    assert api_client.post("/api/v1/sessions/nope/seek", json={"offset": 1}).status_code == 404
    assert api_client.post("/api/v1/sessions/nope/write", json={}).status_code == 404


@pytest.mark.unit
def test_api_error_mapping(monkeypatch: pytest.MonkeyPatch):
    from fibengine.config import ServiceLimits
    from fibengine.device import FibonacciDevice

    small = FibonacciDevice(limits=ServiceLimits(digit_capacity=4))
    monkeypatch.setattr(main_mod, "_device", small)
    with TestClient(main_mod.api_app) as client:
        session_id = client.post("/api/v1/sessions").json()["session_id"]
        client.post(f"/api/v1/sessions/{session_id}/seek", json={"offset": 30})
        # F(30) = 832040 does not fit three digits
        assert client.get(f"/api/v1/sessions/{session_id}/read").status_code == 507
        client.delete(f"/api/v1/sessions/{session_id}")

        main_mod.get_device().shutdown()
        assert client.post("/api/v1/sessions").status_code == 503


@pytest.mark.unit
def test_lifespan_shuts_device_down(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(main_mod, "_device", None)
    with TestClient(main_mod.api_app):
        device = main_mod.get_device()
        assert device.available
    assert not device.available
    # stopped device stays in place
    assert main_mod.get_device() is device
    with pytest.raises(ServiceUnavailable):
        main_mod.get_device().open()


@pytest.mark.unit
def test_api_missing_features(monkeypatch: pytest.MonkeyPatch, api_client: TestClient):
    class MissingRegistry:
        @staticmethod
        def get_feature(_name: str):
            return None

    monkeypatch.setattr(main_mod, "FeatureRegistry", MissingRegistry)
    assert api_client.get("/api/v1/version").status_code == 404
    assert api_client.get("/api/v1/fast/3").status_code == 404
