# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Subcommand handlers for the relbuild CLI.

Each function corresponds to one subcommand and returns an exit code. Errors
are mapped by family:

  bad targets / versions     -> USER_ERROR
  config file, missing input -> CONFIG_ERROR
  keyfiles and passwords     -> CREDENTIAL_ERROR
  external tool failures     -> RUNTIME_ERROR
  manifest verification      -> VALIDATION_ERROR

No print() calls. Everything goes through the structured logger.
"""

import argparse
import asyncio
import logging
from pathlib import Path

from relbuild.cli.exit_codes import (
    CONFIG_ERROR,
    CREDENTIAL_ERROR,
    RUNTIME_ERROR,
    SUCCESS,
    USER_ERROR,
    VALIDATION_ERROR,
)
from relbuild.config.exceptions import ConfigError
from relbuild.config.loader import load_config
from relbuild.config.schema import ReleaseBuilderConfig
from relbuild.logging.logger import get_logger
from relbuild.release.capabilities.resolver import BuildFlags
from relbuild.release.errors import (
    CredentialError,
    ExternalToolError,
    InvalidTargetFormat,
    InvalidVersion,
    ManifestSignatureError,
    ReleaseConfigError,
    UnsatisfiableTargets,
    UnsupportedTargets,
)
from relbuild.runtime.bootstrap import bootstrap

_USER_ERRORS = (InvalidTargetFormat, UnsupportedTargets, UnsatisfiableTargets, InvalidVersion)


def _load_and_bootstrap(
    args: argparse.Namespace,
    command_name: str,
) -> tuple[int, ReleaseBuilderConfig | None, logging.Logger]:
    """
    The shared setup every command needs: load config, run bootstrap.

    Returns (exit_code, config, logger). If exit_code is not SUCCESS the caller
    returns it immediately.
    """
    logger = get_logger(f"relbuild.cli.{command_name}")

    try:
        config = load_config(Path(args.config) if args.config is not None else None)
    except ConfigError as err:
        bootstrap(ReleaseBuilderConfig().global_config, log_level=args.log_level)
        logger.error("Configuration error", extra={"command": command_name, "error": str(err)})
        return CONFIG_ERROR, None, logger

    bootstrap(config.global_config, log_level=args.log_level)
    if args.config is None:
        logger.debug("No config provided, running with defaults", extra={"command": command_name})

    return SUCCESS, config, logger


def _exit_code_for(err: Exception, logger: logging.Logger, command_name: str) -> int:
    """Log an error once, at the right level of detail, and pick its exit code."""
    if isinstance(err, _USER_ERRORS):
        logger.error("Invalid request", extra={"command": command_name, "error": str(err)})
        return USER_ERROR
    if isinstance(err, (ReleaseConfigError, ConfigError)):
        logger.error("Configuration error", extra={"command": command_name, "error": str(err)})
        return CONFIG_ERROR
    if isinstance(err, CredentialError):
        logger.error("Signing key error", extra={"command": command_name, "error": str(err)})
        return CREDENTIAL_ERROR
    if isinstance(err, ManifestSignatureError):
        logger.error("Manifest verification failed", extra={"command": command_name, "error": str(err)})
        return VALIDATION_ERROR
    if isinstance(err, ExternalToolError):
        logger.error(
            "External tool failed",
            extra={"command": command_name, "tool": err.command, "exit_code": err.exit_code, "error": str(err)},
        )
        return RUNTIME_ERROR
    logger.error("Runtime error", extra={"command": command_name, "error": str(err)}, exc_info=True)
    return RUNTIME_ERROR


def _password(value: str | None, message: str, confirm: bool = False) -> str:
    if value:
        return value

    from relbuild.release.keys.keystore import console_prompt

    password = console_prompt(message)
    if confirm and console_prompt("Repeat password") != password:
        raise CredentialError("Passwords do not match")
    return password


def handle_build(args: argparse.Namespace) -> int:
    """Run a full release build."""
    exit_code, config, logger = _load_and_bootstrap(args, "build")
    if exit_code != SUCCESS or config is None:
        return exit_code

    from relbuild.release.keys.keystore import console_prompt
    from relbuild.release.pipeline.pipeline import BuildOutcome, BuildRequest, PackagePipeline
    from relbuild.release.targets.catalog import parse_target, validate_targets
    from relbuild.release.tools.process import SubprocessRunner
    from relbuild.release.versioning.descriptor import Channel

    try:
        request = BuildRequest(
            solution_file=Path(args.solution_file),
            changelog_file=Path(args.changelog_file),
            build_path=Path(args.build_path),
            channel=Channel(args.channel),
            version=args.version,
            targets=tuple(t for raw in args.targets for t in raw.split(",") if t.strip()),
            password=args.password,
            flags=BuildFlags(
                disable_authenticode=args.disable_authenticode,
                disable_codesign=args.disable_codesign,
                disable_notarize=args.disable_notarize,
                disable_gpg=args.disable_gpg,
                disable_docker_push=args.disable_docker_push,
                disable_docker_build=args.disable_docker_build,
            ),
            keep_builds=args.keep_builds,
            git_stash_push=args.git_stash_push,
        )

        if args.dry_run:
            targets = validate_targets(parse_target(t) for t in request.targets)
            logger.info(
                "Dry run, would build release",
                extra={
                    "channel": request.channel.value,
                    "version": request.version,
                    "targets": [str(t) for t in targets],
                    "solution_file": str(request.solution_file),
                },
            )
            return SUCCESS

        pipeline = PackagePipeline(config, SubprocessRunner(), prompt=console_prompt)
        result = asyncio.run(pipeline.run(request))
    except Exception as err:
        return _exit_code_for(err, logger, "build")

    if result.outcome is BuildOutcome.MISSING_CHANGELOG:
        return USER_ERROR

    logger.info(
        "Build finished",
        extra={
            "release": result.release.name if result.release else None,
            "packages": [p.filename for p in result.packages],
            "manifest": str(result.manifest_path),
        },
    )
    return SUCCESS


def handle_targets(args: argparse.Namespace) -> int:
    """List every supported package target, one log record each."""
    exit_code, _config, logger = _load_and_bootstrap(args, "targets")
    if exit_code != SUCCESS:
        return exit_code

    from relbuild.release.targets.catalog import SUPPORTED_TARGETS

    for target in sorted(SUPPORTED_TARGETS):
        logger.info(
            "Supported target",
            extra={"target": str(target), "os": target.os.value, "arch": target.arch.value, "format": target.format.value},
        )
    return SUCCESS


def handle_create_key(args: argparse.Namespace) -> int:
    """Create a new password-protected update-signing keyfile."""
    exit_code, _config, logger = _load_and_bootstrap(args, "create-key")
    if exit_code != SUCCESS:
        return exit_code

    from relbuild.release.keys.keyfile import generate_keyfile, public_key_to_xml

    output = Path(args.output)
    if output.exists():
        logger.error("Keyfile already exists, refusing to overwrite", extra={"path": str(output)})
        return USER_ERROR

    if args.dry_run:
        logger.info("Dry run, would create keyfile", extra={"path": str(output), "key_size": args.key_size})
        return SUCCESS

    try:
        password = _password(args.password, f"Enter password for {output}", confirm=True)
        key = generate_keyfile(output, password, key_size=args.key_size)
    except Exception as err:
        return _exit_code_for(err, logger, "create-key")

    logger.info(
        "Keyfile created",
        extra={"path": str(output), "key_size": args.key_size, "public_key": public_key_to_xml(key.public_key())},
    )
    return SUCCESS


def handle_verify(args: argparse.Namespace) -> int:
    """Verify a signed manifest and the packages it lists."""
    exit_code, _config, logger = _load_and_bootstrap(args, "verify")
    if exit_code != SUCCESS:
        return exit_code

    from relbuild.release.keys.keystore import load_additional
    from relbuild.release.manifests.manifest import load_public_keys
    from relbuild.release.verification.verifier import verify_release

    try:
        if args.keyfile:
            password = _password(args.password, "Enter keyfile password")
            keys = load_additional([Path(p) for p in args.keyfile], password)
            public_keys = [k.private_key.public_key() for k in keys]
        else:
            public_keys = load_public_keys(Path(args.public_keys))

        packages_dir = Path(args.packages_dir) if args.packages_dir is not None else None
        report = verify_release(Path(args.manifest), public_keys, packages_dir=packages_dir)
    except ValueError as err:
        logger.error("Public keys file is not valid", extra={"error": str(err)})
        return CONFIG_ERROR
    except Exception as err:
        return _exit_code_for(err, logger, "verify")

    if not report.is_valid:
        logger.error(
            "Verification failed",
            extra={"manifest": report.manifest, "failed": report.checks_failed, "errors": report.errors},
        )
        return VALIDATION_ERROR

    logger.info(
        "Verification passed",
        extra={"manifest": report.manifest, "version": report.version, "checks": report.checks_passed},
    )
    return SUCCESS
