# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Signing and notarization of built packages.

Four schemes, each a thin wrapper over its external tool:

  - Authenticode: signtool on Windows, osslsigncode elsewhere (msi only)
  - Apple codesign: codesign for .dmg, productsign for .pkg
  - Apple notarization: notarytool submit --wait, then stapler
  - GPG: detached ASCII-armored signature next to every file

Signers never decide whether a scheme is active. The pipeline checks
Capabilities and only calls what is enabled.
"""

import json
import logging
import os
from pathlib import Path

from relbuild.config.schema import SigningConfig
from relbuild.logging.logger import get_logger
from relbuild.release.errors import ExternalToolError, ReleaseConfigError
from relbuild.release.targets.catalog import PackageFormat
from relbuild.release.tools.process import Command, CommandRunner
from relbuild.runtime.environment import HostEnvironment

_logger: logging.Logger = get_logger(__name__)

NOTARY_ACCEPTED = "Accepted"


def _read_secret(path: str | None, what: str) -> str:
    if path is None:
        raise ReleaseConfigError(f"{what} is not configured")
    try:
        return Path(path).read_text(encoding="utf-8").strip()
    except OSError as err:
        raise ReleaseConfigError(f"Cannot read {what} at {path}: {err}") from err


def signature_path(file: Path) -> Path:
    return file.with_name(file.name + ".sig")


class Signers:
    def __init__(self, runner: CommandRunner, signing: SigningConfig, host: HostEnvironment) -> None:
        self._runner = runner
        self._signing = signing
        self._host = host

    async def authenticode(self, file: Path) -> None:
        """
        Sign a Windows installer in place.

        osslsigncode cannot sign in place, so it writes a sibling file that
        then replaces the original. It reads the password from the password
        file itself; signtool only takes it on the command line, where it is
        marked secret.
        """
        pfx = self._signing.authenticode_pfx
        password_file = self._signing.authenticode_password_file
        password = _read_secret(password_file, "authenticode password file")
        _logger.info("Authenticode signing", extra={"file": file.name})

        if self._host.is_windows:
            await self._runner.run(
                Command(
                    program="signtool",
                    args=(
                        "sign", "/f", str(pfx), "/p", password,
                        "/fd", "SHA256", "/tr", self._signing.timestamp_url, "/td", "SHA256",
                        str(file),
                    ),
                    secrets=frozenset({password}),
                )
            )
            return

        signed = file.with_name(file.name + ".signed")
        await self._runner.run(
            Command(
                program="osslsigncode",
                args=(
                    "sign", "-pkcs12", str(pfx), "-readpass", str(password_file),
                    "-h", "sha256", "-ts", self._signing.timestamp_url,
                    "-in", str(file), "-out", str(signed),
                ),
                secrets=frozenset({password}),
            )
        )
        if not signed.is_file():
            raise ExternalToolError("osslsigncode", 0, f"no signed output at {signed}")
        os.replace(signed, file)

    async def codesign(self, file: Path, package_format: PackageFormat) -> None:
        if package_format is PackageFormat.PKG:
            identity = self._signing.installer_identity or self._signing.codesign_identity
            signed = file.with_name(file.stem + ".signed.pkg")
            _logger.info("productsign", extra={"file": file.name})
            await self._runner.run(
                Command(program="productsign", args=("--sign", str(identity), "--timestamp", str(file), str(signed)))
            )
            if not signed.is_file():
                raise ExternalToolError("productsign", 0, f"no signed output at {signed}")
            os.replace(signed, file)
            return

        _logger.info("codesign", extra={"file": file.name})
        await self._runner.run(
            Command(
                program="codesign",
                args=("--force", "--sign", str(self._signing.codesign_identity), "--timestamp", str(file)),
            )
        )

    async def notarize(self, file: Path) -> None:
        """
        Submit to Apple's notary service, wait for the verdict and staple.

        Raises:
            ExternalToolError: The submission was not accepted.
        """
        _logger.info("Notarizing", extra={"file": file.name})
        result = await self._runner.run(
            Command(
                program="xcrun",
                args=(
                    "notarytool", "submit", str(file),
                    "--keychain-profile", str(self._signing.notarize_profile),
                    "--wait", "--output-format", "json",
                ),
            )
        )

        try:
            status = json.loads(result.stdout).get("status", "")
        except (json.JSONDecodeError, AttributeError):
            status = ""
        if status != NOTARY_ACCEPTED:
            raise ExternalToolError(
                f"notarytool submit {file.name}", 0, f"notarization status: {status or 'unknown'}"
            )

        await self._runner.run(Command(program="xcrun", args=("stapler", "staple", str(file))))

    async def gpg(self, file: Path) -> Path:
        """Write `<file>.sig` and return its path."""
        output = signature_path(file)
        args: list[str] = ["--batch", "--yes", "--local-user", str(self._signing.gpg_key_id)]
        if self._signing.gpg_passphrase_file is not None:
            args += ["--pinentry-mode", "loopback", "--passphrase-file", self._signing.gpg_passphrase_file]
        args += ["--armor", "--detach-sign", "--output", str(output), str(file)]

        _logger.info("GPG signing", extra={"file": file.name})
        await self._runner.run(Command(program="gpg", args=tuple(args)))
        return output
