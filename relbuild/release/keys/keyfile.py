# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Password-protected keyfile envelope.

Layout (all integers big-endian):

    magic      6 bytes   b"RBKEY\\x01"
    salt      16 bytes
    iterations 4 bytes   PBKDF2 rounds
    verifier  32 bytes   HMAC-SHA256(mac_key, VERIFIER_LABEL)
    nonce     12 bytes
    ciphertext rest      AES-256-GCM, header above as associated data

PBKDF2-HMAC-SHA256 stretches the password into 64 bytes: the first half is
the AES key, the second half the verifier MAC key. The verifier is checked
before decrypting, which is what lets us tell "wrong password" apart from
"damaged file": a wrong password fails the verifier, a damaged file passes it
and then fails the GCM tag or the XML parse.

The plaintext is the RSA key in the XML form the update client already
understands:

    <RSAKeyValue><Modulus/><Exponent/><P/><Q/><DP/><DQ/><InverseQ/><D/></RSAKeyValue>

with every value base64 of the big-endian unsigned integer.
"""

import base64
import binascii
import hashlib
import hmac
import os
import struct
import xml.etree.ElementTree as ET
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from relbuild.release.errors import MalformedKeyfileError, WrongPasswordError
from relbuild.utils.filesystem import atomic_write_bytes

MAGIC = b"RBKEY\x01"
SALT_SIZE = 16
NONCE_SIZE = 12
VERIFIER_SIZE = 32
DEFAULT_ITERATIONS = 200_000
MAX_ITERATIONS = 10_000_000
VERIFIER_LABEL = b"relbuild-keyfile-verifier"

_HEADER_SIZE = len(MAGIC) + SALT_SIZE + 4 + VERIFIER_SIZE + NONCE_SIZE
_PRIVATE_FIELDS = ("Modulus", "Exponent", "P", "Q", "DP", "DQ", "InverseQ", "D")


def _derive_keys(password: str, salt: bytes, iterations: int) -> tuple[bytes, bytes]:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=64, salt=salt, iterations=iterations)
    material = kdf.derive(password.encode("utf-8"))
    return material[:32], material[32:]


def _verifier(mac_key: bytes) -> bytes:
    return hmac.new(mac_key, VERIFIER_LABEL, hashlib.sha256).digest()


def _int_to_b64(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8 or 1, "big")
    return base64.b64encode(raw).decode("ascii")


def _b64_to_int(text: str) -> int:
    return int.from_bytes(base64.b64decode(text, validate=True), "big")


def private_key_to_xml(key: rsa.RSAPrivateKey) -> str:
    numbers = key.private_numbers()
    pub = numbers.public_numbers
    values = {
        "Modulus": pub.n,
        "Exponent": pub.e,
        "P": numbers.p,
        "Q": numbers.q,
        "DP": numbers.dmp1,
        "DQ": numbers.dmq1,
        "InverseQ": numbers.iqmp,
        "D": numbers.d,
    }
    root = ET.Element("RSAKeyValue")
    for name in _PRIVATE_FIELDS:
        ET.SubElement(root, name).text = _int_to_b64(values[name])
    return ET.tostring(root, encoding="unicode")


def public_key_to_xml(key: rsa.RSAPublicKey) -> str:
    pub = key.public_numbers()
    root = ET.Element("RSAKeyValue")
    ET.SubElement(root, "Modulus").text = _int_to_b64(pub.n)
    ET.SubElement(root, "Exponent").text = _int_to_b64(pub.e)
    return ET.tostring(root, encoding="unicode")


def _xml_values(xml_text: str) -> dict[str, int]:
    root = ET.fromstring(xml_text)
    if root.tag != "RSAKeyValue":
        raise ValueError(f"unexpected root element <{root.tag}>")
    values: dict[str, int] = {}
    for child in root:
        if child.text:
            values[child.tag] = _b64_to_int(child.text.strip())
    return values


def private_key_from_xml(xml_text: str) -> rsa.RSAPrivateKey:
    """
    Raises:
        ValueError: On missing fields, bad base64 or inconsistent numbers.
    """
    try:
        values = _xml_values(xml_text)
    except (ET.ParseError, binascii.Error) as err:
        raise ValueError(f"invalid key XML: {err}") from err

    missing = [name for name in _PRIVATE_FIELDS if name not in values]
    if missing:
        raise ValueError(f"key XML is missing {', '.join(missing)}")

    public = rsa.RSAPublicNumbers(e=values["Exponent"], n=values["Modulus"])
    private = rsa.RSAPrivateNumbers(
        p=values["P"],
        q=values["Q"],
        d=values["D"],
        dmp1=values["DP"],
        dmq1=values["DQ"],
        iqmp=values["InverseQ"],
        public_numbers=public,
    )
    return private.private_key()


def public_key_from_xml(xml_text: str) -> rsa.RSAPublicKey:
    try:
        values = _xml_values(xml_text)
    except (ET.ParseError, binascii.Error) as err:
        raise ValueError(f"invalid key XML: {err}") from err
    if "Modulus" not in values or "Exponent" not in values:
        raise ValueError("public key XML needs Modulus and Exponent")
    return rsa.RSAPublicNumbers(e=values["Exponent"], n=values["Modulus"]).public_key()


def encrypt_keyfile(
    key: rsa.RSAPrivateKey,
    password: str,
    iterations: int = DEFAULT_ITERATIONS,
) -> bytes:
    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    aes_key, mac_key = _derive_keys(password, salt, iterations)
    header = MAGIC + salt + struct.pack(">I", iterations) + _verifier(mac_key) + nonce
    ciphertext = AESGCM(aes_key).encrypt(nonce, private_key_to_xml(key).encode("utf-8"), header)
    return header + ciphertext


def decrypt_keyfile(data: bytes, password: str) -> rsa.RSAPrivateKey:
    """
    Open a keyfile envelope.

    Raises:
        WrongPasswordError: The password does not match this keyfile.
        MalformedKeyfileError: The data is not a keyfile or is damaged.
    """
    if len(data) <= _HEADER_SIZE or not data.startswith(MAGIC):
        raise MalformedKeyfileError("Not a relbuild keyfile (bad header)")

    offset = len(MAGIC)
    salt = data[offset : offset + SALT_SIZE]
    offset += SALT_SIZE
    (iterations,) = struct.unpack(">I", data[offset : offset + 4])
    offset += 4
    verifier = data[offset : offset + VERIFIER_SIZE]
    offset += VERIFIER_SIZE
    nonce = data[offset : offset + NONCE_SIZE]
    header = data[:_HEADER_SIZE]
    ciphertext = data[_HEADER_SIZE:]

    if not 0 < iterations <= MAX_ITERATIONS:
        raise MalformedKeyfileError("Keyfile header has an invalid iteration count")

    aes_key, mac_key = _derive_keys(password, salt, iterations)
    if not hmac.compare_digest(verifier, _verifier(mac_key)):
        raise WrongPasswordError("Keyfile password is incorrect")

    try:
        plaintext = AESGCM(aes_key).decrypt(nonce, ciphertext, header)
    except InvalidTag as err:
        raise MalformedKeyfileError("Keyfile is corrupted (authentication failed)") from err

    try:
        return private_key_from_xml(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as err:
        raise MalformedKeyfileError(f"Keyfile payload is not a valid RSA key: {err}") from err


def generate_keyfile(
    path: Path,
    password: str,
    key_size: int = 2048,
    iterations: int = DEFAULT_ITERATIONS,
) -> rsa.RSAPrivateKey:
    """Create a fresh RSA key and write it as an encrypted keyfile."""
    if path.exists():
        raise FileExistsError(f"Refusing to overwrite existing keyfile: {path}")
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    atomic_write_bytes(path, encrypt_keyfile(key, password, iterations=iterations))
    return key
