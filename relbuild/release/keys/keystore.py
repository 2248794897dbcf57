# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Update-signing key loading.

The first configured keyfile is the primary key: it signs the manifest, and a
wrong password for it may be corrected interactively. Further keyfiles are
alternates that clients accept for verification; a wrong password on one of
those is a hard failure because they are optional trust entries, not the
release identity.

Key material only ever lives in process memory.
"""

import getpass
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from relbuild.logging.logger import get_logger
from relbuild.release.errors import (
    KeyfileMissing,
    KeyfileUnspecified,
    WrongPasswordError,
)
from relbuild.release.keys.keyfile import decrypt_keyfile, public_key_to_xml

_logger: logging.Logger = get_logger(__name__)

# Anything that can ask the operator for a password given a message.
PasswordPrompt = Callable[[str], str]


def console_prompt(message: str) -> str:
    return getpass.getpass(f"{message}: ")


@dataclass(frozen=True)
class SigningKey:
    """An RSA key pair plus the password that unlocked it."""

    private_key: rsa.RSAPrivateKey = field(repr=False)
    password: str = field(repr=False)
    source: Path

    def sign(self, data: bytes) -> bytes:
        return self.private_key.sign(data, padding.PKCS1v15(), hashes.SHA256())

    def public_xml(self) -> str:
        return public_key_to_xml(self.private_key.public_key())


@dataclass(frozen=True)
class KeyStore:
    """Ordered, non-empty key list. Index 0 is the primary key."""

    keys: tuple[SigningKey, ...]

    def __post_init__(self) -> None:
        if not self.keys:
            raise KeyfileUnspecified("A key store needs at least the primary key")

    @property
    def primary(self) -> SigningKey:
        return self.keys[0]

    @property
    def alternates(self) -> tuple[SigningKey, ...]:
        return self.keys[1:]

    def public_keys(self) -> list[rsa.RSAPublicKey]:
        return [k.private_key.public_key() for k in self.keys]


def _require_keyfile(path: Optional[Path]) -> Path:
    if path is None or not str(path).strip():
        raise KeyfileUnspecified("Unable to load keyfile, no keyfile specified")
    if not path.is_file():
        raise KeyfileMissing(f"Keyfile not found: {path}")
    return path


def load_primary(
    path: Optional[Path],
    password: str,
    prompt: Optional[PasswordPrompt] = None,
    ask_for_new_password: bool = False,
    max_attempts: int = 3,
) -> SigningKey:
    """
    Load and decrypt the primary keyfile.

    With ask_for_new_password, a wrong password triggers another prompt,
    up to max_attempts decrypt attempts in total.

    Raises:
        KeyfileUnspecified: No path given.
        KeyfileMissing: Path does not exist.
        WrongPasswordError: Wrong password and no (more) re-prompting allowed.
        MalformedKeyfileError: The file is damaged.
    """
    keyfile = _require_keyfile(path)
    data = keyfile.read_bytes()

    attempt = 1
    while True:
        try:
            private_key = decrypt_keyfile(data, password)
        except WrongPasswordError:
            if not ask_for_new_password or prompt is None or attempt >= max_attempts:
                raise
            _logger.warning(
                "Wrong keyfile password, asking again",
                extra={"keyfile": str(keyfile), "attempt": attempt, "max_attempts": max_attempts},
            )
            password = prompt(f"Enter password for {keyfile}")
            attempt += 1
            continue

        _logger.info("Loaded primary signing key", extra={"keyfile": str(keyfile)})
        return SigningKey(private_key=private_key, password=password, source=keyfile)


def load_additional(paths: Sequence[Path], password: str) -> list[SigningKey]:
    """Load alternate keys. Any wrong password is fatal."""
    keys: list[SigningKey] = []
    for path in paths:
        keyfile = _require_keyfile(path)
        private_key = decrypt_keyfile(keyfile.read_bytes(), password)
        keys.append(SigningKey(private_key=private_key, password=password, source=keyfile))
        _logger.info("Loaded alternate signing key", extra={"keyfile": str(keyfile)})
    return keys


def load_keystore(
    paths: Sequence[Path],
    password: str,
    prompt: Optional[PasswordPrompt] = None,
    max_attempts: int = 3,
) -> KeyStore:
    """
    Load the primary key (with re-prompting) and every alternate.

    Alternates are opened with the password that finally unlocked the primary.
    """
    primary = load_primary(
        paths[0] if paths else None,
        password,
        prompt=prompt,
        ask_for_new_password=prompt is not None,
        max_attempts=max_attempts,
    )
    alternates = load_additional(list(paths[1:]), primary.password)
    return KeyStore(keys=(primary, *alternates))
