# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Error taxonomy for the release pipeline.

Four families, matching how a release run can go wrong:

  ReleaseConfigError : bad request or missing inputs. Always detected before
                        the source tree is touched.
  CredentialError    : keyfile problems. Only a wrong password on the
                        primary key is recoverable (by re-prompting).
  ExternalToolError  : a compiler, packager, signer, notarizer, docker or git
                        command failed. Always fatal, never retried.
  ManifestSignatureError: a manifest failed verification.

The CLI maps each family to its own exit code.
"""

from collections.abc import Iterable


class ReleaseError(Exception):
    """Base for everything the release pipeline raises on purpose."""


# --- configuration -----------------------------------------------------------


class ReleaseConfigError(ReleaseError):
    """A required file is missing or the request cannot be satisfied."""


class InvalidTargetFormat(ReleaseConfigError):
    """A target token is not of the form '<arch>-<os>.<format>'."""

    def __init__(self, raw: str, reason: str) -> None:
        self.raw = raw
        super().__init__(f"Invalid package target '{raw}': {reason}")


class _TargetListError(ReleaseConfigError):
    _prefix = ""

    def __init__(self, offending: Iterable[object]) -> None:
        self.offending = tuple(offending)
        super().__init__(f"{self._prefix}: {', '.join(str(t) for t in self.offending)}")


class UnsupportedTargets(_TargetListError):
    """One or more requested targets are not in the supported catalog."""

    _prefix = "Following targets are not supported"


class UnsatisfiableTargets(_TargetListError):
    """Explicitly requested targets need a capability that is not active."""

    _prefix = "Following targets cannot be built with the active capabilities"


class InvalidVersion(ReleaseConfigError):
    """A version override or counter file could not be parsed."""


class InvalidUrlTemplate(ReleaseConfigError):
    """A URL template uses a placeholder outside the known set."""


# --- credentials -------------------------------------------------------------


class CredentialError(ReleaseError):
    """Base for signing-key problems."""


class KeyfileUnspecified(CredentialError):
    """No keyfile was configured."""


class KeyfileMissing(CredentialError):
    """A configured keyfile does not exist on disk."""


class WrongPasswordError(CredentialError):
    """The keyfile password does not match the keyfile."""


class MalformedKeyfileError(CredentialError):
    """The keyfile is damaged or not a keyfile at all."""


# --- external tools ----------------------------------------------------------


class ExternalToolError(ReleaseError):
    """An external command exited non-zero or could not be started."""

    def __init__(self, command: str, exit_code: int, stderr: str = "") -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        tail = stderr.strip().splitlines()[-5:]
        detail = f"\n{chr(10).join(tail)}" if tail else ""
        super().__init__(f"Command '{command}' failed with exit code {exit_code}{detail}")


# --- manifests ---------------------------------------------------------------


class ManifestSignatureError(ReleaseError):
    """The manifest signature does not verify against any known key."""
