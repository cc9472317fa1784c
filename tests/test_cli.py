"""Tests for the command-line entry point."""

import json
from pathlib import Path

import pytest

from cardmirror.cli.main import CLIApp
from cardmirror.core.auth import AuthClient, DeviceCode, PollResult, PollStatus, Session, save_credentials

from conftest import FAKE_JPEG, FAKE_MP3, card_document, chapter, track


class TestParser:
    """Tests for argument parsing."""

    @pytest.mark.parametrize("argv", [[], ["web"], ["sd", "only-input"], ["backup", "x"]])
    def test_usage_errors_exit_with_2(self, argv):
        with pytest.raises(SystemExit) as info:
            CLIApp().build_parser().parse_args(argv)
        assert info.value.code == 2

    def test_global_options(self):
        args = CLIApp().build_parser().parse_args(["--debug", "--config", "c.yaml", "sd", "in", "out"])
        assert args.debug
        assert args.config == "c.yaml"
        assert (args.command, args.input, args.output) == ("sd", "in", "out")

    def test_login_defaults(self):
        args = CLIApp().build_parser().parse_args(["login"])
        assert args.max_attempts == 60
        assert args.wait is None


class TestRun:
    """Tests for CLIApp.run exit codes and effects."""

    @pytest.mark.anyio
    async def test_web_requires_login(self, settings, tmp_path):
        code = await CLIApp(settings).run(["web", str(tmp_path / "out")])
        assert code == 1
        assert not (tmp_path / "out").exists()

    @pytest.mark.anyio
    async def test_sd_missing_input(self, settings, tmp_path):
        code = await CLIApp(settings).run(["sd", str(tmp_path / "nope"), str(tmp_path / "out")])
        assert code == 1

    @pytest.mark.anyio
    async def test_invalid_config_file(self, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text("client_id: [unclosed\n")
        code = await CLIApp().run(["--config", str(config), "sd", str(tmp_path), str(tmp_path / "out")])
        assert code == 1

    @pytest.mark.anyio
    async def test_sd_backup_without_login(self, settings, tmp_path, write_export, capsys):
        """Local files are copied; the summary is printed even without a login."""
        doc = card_document("sd1", "Songs", [
            chapter("Chapter A", [track("Alpha", "yoto:#aud1")], icon="yoto:#ic1"),
            chapter("Chapter B", [track("Beta", "yoto:#gone")]),
        ])
        export = write_export(doc, {"aud1": FAKE_MP3, "ic1": FAKE_JPEG})
        output = tmp_path / "backup"

        code = await CLIApp(settings).run(["sd", str(export), str(output)])

        assert code == 0
        card_dir = output / "Songs"
        assert sorted(p.name for p in card_dir.iterdir()) == ["01. Alpha.jpg", "01. Alpha.mp3", "card.json"]
        assert json.loads((card_dir / "card.json").read_text()) == doc
        out = capsys.readouterr().out
        assert "Total cards" in out
        assert "Songs" in out


class TestLogin:
    """Tests for the login command with the auth client stubbed out."""

    CODE = DeviceCode.from_dict({"device_code": "dev-1", "user_code": "ABCD",
                                 "verification_uri": "https://login.test/activate", "interval": 1})

    def _stub(self, monkeypatch, result):
        async def request_device_code(self):
            return TestLogin.CODE

        async def wait_for_authorization(self, code, **kwargs):
            return result

        monkeypatch.setattr(AuthClient, "request_device_code", request_device_code)
        monkeypatch.setattr(AuthClient, "wait_for_authorization", wait_for_authorization)

    @pytest.mark.anyio
    async def test_login_stores_token_over_device_code(self, settings, monkeypatch):
        tokens = {"access_token": "a", "refresh_token": "r"}
        self._stub(monkeypatch, PollResult(PollStatus.AUTHORIZED, Session(access_token="a", refresh_token="r"), tokens))

        assert await CLIApp(settings).run(["login"]) == 0

        stored = json.loads(Path(settings.credentials_file).read_text())
        assert stored["device_code"] == "dev-1"
        assert stored["access_token"] == "a"
        assert stored["refresh_token"] == "r"

    @pytest.mark.anyio
    async def test_login_timeout_keeps_existing_credentials(self, settings, monkeypatch):
        """An unfinished login leaves a working credential file untouched."""
        save_credentials(Session(access_token="old", refresh_token="r0"), settings.credentials_file)
        before = Path(settings.credentials_file).read_text()
        self._stub(monkeypatch, PollResult(PollStatus.EXPIRED))

        assert await CLIApp(settings).run(["login", "--max-attempts", "2"]) == 1

        assert Path(settings.credentials_file).read_text() == before

    @pytest.mark.anyio
    async def test_login_timeout_without_credentials(self, settings, monkeypatch):
        self._stub(monkeypatch, PollResult(PollStatus.EXPIRED))

        assert await CLIApp(settings).run(["login"]) == 1

        assert not Path(settings.credentials_file).exists()
