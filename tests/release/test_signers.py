# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""Tests for the signing tool wrappers."""

import asyncio
import json
import logging
from pathlib import Path

import pytest

from relbuild.config.schema import SigningConfig
from relbuild.logging.logger import ROOT_LOGGER_NAME, configure_logging
from relbuild.release.errors import ExternalToolError, ReleaseConfigError
from relbuild.release.targets.catalog import PackageFormat
from relbuild.release.tools.process import REDACTED, Command, CommandResult
from relbuild.release.tools.signers import Signers, signature_path
from tests.fakes.runner import FakeCommandRunner, arg_after, make_host


@pytest.fixture()
def json_logs() -> None:
    configure_logging("DEBUG")
    yield  # type: ignore[misc]
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


@pytest.fixture()
def authenticode_settings(tmp_path: Path) -> SigningConfig:
    pfx = tmp_path / "cert.pfx"
    pfx.write_bytes(b"pfx")
    password = tmp_path / "pfx-password.txt"
    password.write_text("s3cret\n", encoding="utf-8")
    return SigningConfig(authenticode_pfx=str(pfx), authenticode_password_file=str(password))


@pytest.fixture()
def installer(tmp_path: Path) -> Path:
    path = tmp_path / "app-x64-win.msi"
    path.write_bytes(b"unsigned")
    return path


class TestAuthenticode:
    def test_osslsigncode_replaces_the_original(
        self, installer: Path, authenticode_settings: SigningConfig, fake_runner: FakeCommandRunner
    ):
        def sign(command: Command) -> None:
            Path(arg_after(command, "-out")).write_bytes(b"signed")

        fake_runner.on("osslsigncode", sign)
        signers = Signers(fake_runner, authenticode_settings, make_host("linux", ["osslsigncode"]))
        asyncio.run(signers.authenticode(installer))

        (call,) = fake_runner.calls("osslsigncode")
        assert arg_after(call, "-readpass") == authenticode_settings.authenticode_password_file
        assert "s3cret" not in call.args
        assert arg_after(call, "-in") == str(installer)
        assert installer.read_bytes() == b"signed"
        assert not installer.with_name(installer.name + ".signed").exists()

    def test_osslsigncode_without_output(
        self, installer: Path, authenticode_settings: SigningConfig, fake_runner: FakeCommandRunner
    ):
        signers = Signers(fake_runner, authenticode_settings, make_host("linux", ["osslsigncode"]))
        with pytest.raises(ExternalToolError):
            asyncio.run(signers.authenticode(installer))
        assert installer.read_bytes() == b"unsigned"

    def test_signtool_on_windows(
        self, installer: Path, authenticode_settings: SigningConfig, fake_runner: FakeCommandRunner
    ):
        signers = Signers(fake_runner, authenticode_settings, make_host("win", ["signtool"]))
        asyncio.run(signers.authenticode(installer))
        (call,) = fake_runner.calls("signtool")
        assert call.args[0] == "sign"
        assert call.args[-1] == str(installer)
        assert arg_after(call, "/tr") == "http://timestamp.digicert.com"

    def test_missing_password_file(self, installer: Path, fake_runner: FakeCommandRunner):
        signers = Signers(fake_runner, SigningConfig(authenticode_pfx="x.pfx"), make_host("linux", []))
        with pytest.raises(ReleaseConfigError):
            asyncio.run(signers.authenticode(installer))
        assert fake_runner.commands == []

    @pytest.mark.parametrize(("system", "program"), [("linux", "osslsigncode"), ("win", "signtool")])
    def test_failure_never_reveals_the_password(
        self,
        installer: Path,
        authenticode_settings: SigningConfig,
        fake_runner: FakeCommandRunner,
        json_logs: None,
        capsys: pytest.CaptureFixture[str],
        system: str,
        program: str,
    ):
        fake_runner.fail(program, exit_code=1, stderr="bad password s3cret for cert.pfx")
        signers = Signers(fake_runner, authenticode_settings, make_host(system, [program]))

        with pytest.raises(ExternalToolError) as excinfo:
            asyncio.run(signers.authenticode(installer))

        assert "s3cret" not in str(excinfo.value)
        assert REDACTED in str(excinfo.value)
        logged = capsys.readouterr().out
        assert "Command failed" in logged
        assert "s3cret" not in logged


class TestApple:
    def test_dmg_uses_codesign(self, tmp_path: Path, fake_runner: FakeCommandRunner):
        dmg = tmp_path / "app.dmg"
        dmg.write_bytes(b"dmg")
        signing = SigningConfig(codesign_identity="Developer ID Application: Example")
        asyncio.run(Signers(fake_runner, signing, make_host("osx", [])).codesign(dmg, PackageFormat.DMG))
        (call,) = fake_runner.calls("codesign")
        assert arg_after(call, "--sign") == "Developer ID Application: Example"

    def test_pkg_uses_productsign_with_installer_identity(self, tmp_path: Path, fake_runner: FakeCommandRunner):
        pkg = tmp_path / "app.pkg"
        pkg.write_bytes(b"pkg")

        def sign(command: Command) -> None:
            Path(command.args[-1]).write_bytes(b"signed pkg")

        fake_runner.on("productsign", sign)
        signing = SigningConfig(codesign_identity="Application", installer_identity="Installer")
        asyncio.run(Signers(fake_runner, signing, make_host("osx", [])).codesign(pkg, PackageFormat.PKG))

        (call,) = fake_runner.calls("productsign")
        assert arg_after(call, "--sign") == "Installer"
        assert pkg.read_bytes() == b"signed pkg"
        assert fake_runner.calls("codesign") == []

    def test_notarize_accepted_then_staple(self, tmp_path: Path, fake_runner: FakeCommandRunner):
        dmg = tmp_path / "app.dmg"
        dmg.write_bytes(b"dmg")

        def xcrun(command: Command) -> CommandResult:
            if command.args[0] == "notarytool":
                return CommandResult(exit_code=0, stdout=json.dumps({"id": "abc", "status": "Accepted"}))
            return CommandResult(exit_code=0)

        fake_runner.on("xcrun", xcrun)
        signers = Signers(fake_runner, SigningConfig(notarize_profile="notary"), make_host("osx", ["xcrun"]))
        asyncio.run(signers.notarize(dmg))

        submit, staple = fake_runner.calls("xcrun")
        assert arg_after(submit, "--keychain-profile") == "notary"
        assert "--wait" in submit.args
        assert staple.args == ("stapler", "staple", str(dmg))

    @pytest.mark.parametrize("stdout", [json.dumps({"status": "Invalid"}), "not json", "[]"])
    def test_notarize_rejected_is_not_stapled(self, tmp_path: Path, fake_runner: FakeCommandRunner, stdout: str):
        dmg = tmp_path / "app.dmg"
        dmg.write_bytes(b"dmg")
        fake_runner.on("xcrun", lambda _cmd: CommandResult(exit_code=0, stdout=stdout))

        signers = Signers(fake_runner, SigningConfig(notarize_profile="notary"), make_host("osx", ["xcrun"]))
        with pytest.raises(ExternalToolError):
            asyncio.run(signers.notarize(dmg))
        assert len(fake_runner.calls("xcrun")) == 1


class TestGpg:
    def test_detached_signature_path(self, tmp_path: Path, fake_runner: FakeCommandRunner):
        package = tmp_path / "app.deb"
        signing = SigningConfig(gpg_key_id="ABCD1234")
        output = asyncio.run(Signers(fake_runner, signing, make_host("linux", ["gpg"])).gpg(package))

        assert output == signature_path(package) == tmp_path / "app.deb.sig"
        (call,) = fake_runner.calls("gpg")
        assert arg_after(call, "--local-user") == "ABCD1234"
        assert arg_after(call, "--output") == str(output)
        assert "--passphrase-file" not in call.args

    def test_passphrase_file_uses_loopback(self, tmp_path: Path, fake_runner: FakeCommandRunner):
        signing = SigningConfig(gpg_key_id="ABCD1234", gpg_passphrase_file="/secrets/gpg.txt")
        asyncio.run(Signers(fake_runner, signing, make_host("linux", ["gpg"])).gpg(tmp_path / "a.zip"))
        (call,) = fake_runner.calls("gpg")
        assert arg_after(call, "--pinentry-mode") == "loopback"
        assert arg_after(call, "--passphrase-file") == "/secrets/gpg.txt"

    def test_gpg_failure_propagates(self, tmp_path: Path, fake_runner: FakeCommandRunner):
        fake_runner.fail("gpg", exit_code=2, stderr="gpg: signing failed: No secret key")
        signing = SigningConfig(gpg_key_id="ABCD1234")
        with pytest.raises(ExternalToolError, match="No secret key"):
            asyncio.run(Signers(fake_runner, signing, make_host("linux", ["gpg"])).gpg(tmp_path / "a.zip"))
