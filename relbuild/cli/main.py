# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI entrypoint for relbuild.

Single root command; every operation is a subcommand of `relbuild`.
The global options (--config, --log-level, --dry-run) are inherited by every
subcommand through argparse's parent parser mechanism.

Usage:
    relbuild build canary --solution-file src/App.sln --targets x64-linux.deb x64-win.zip
    relbuild targets
    relbuild create-key --output updater.key
    relbuild verify --manifest build/packages/latest-v2.manifest --keyfile updater.key
"""

import argparse
import sys
from typing import Optional

from relbuild.cli.commands import (
    handle_build,
    handle_create_key,
    handle_targets,
    handle_verify,
)
from relbuild.cli.exit_codes import USER_ERROR
from relbuild.release.versioning.descriptor import Channel


def _build_global_parser() -> argparse.ArgumentParser:
    """
    Build the parent parser with global options.

    A separate parent parser (add_help=False) keeps help text from colliding
    between the parent and the subcommand parsers.
    """
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file.",
    )
    parent.add_argument(
        "--log-level",
        type=str,
        default=None,
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging verbosity level (overrides the config file).",
    )
    parent.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        dest="dry_run",
        help="Validate and report what would happen without changing anything.",
    )
    return parent


def _add_build_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "channel",
        nargs="?",
        default=Channel.CANARY.value,
        choices=[c.value for c in Channel],
        help="Release channel.",
    )
    parser.add_argument("--version", dest="version", default=None, help="Explicit version, e.g. 2.1.0.5.")
    parser.add_argument(
        "--targets",
        nargs="*",
        default=[],
        help="Package targets such as x64-linux.deb; all supported targets when omitted.",
    )
    parser.add_argument("--build-path", dest="build_path", default="build", help="Output folder.")
    parser.add_argument(
        "--solution-file",
        dest="solution_file",
        required=True,
        help="Solution file; its folder is the source tree root.",
    )
    parser.add_argument(
        "--changelog-file",
        dest="changelog_file",
        default="changelog-news.txt",
        help="Changelog news, prepended to the changelog. Must exist (may be empty).",
    )
    parser.add_argument("--password", default=None, help="Keyfile password; prompted for when omitted.")
    parser.add_argument("--disable-authenticode", action="store_true", dest="disable_authenticode")
    parser.add_argument("--disable-signcode", action="store_true", dest="disable_codesign")
    parser.add_argument("--disable-notarize-signing", action="store_true", dest="disable_notarize")
    parser.add_argument("--disable-gpg-signing", action="store_true", dest="disable_gpg")
    parser.add_argument("--disable-docker-push", action="store_true", dest="disable_docker_push")
    parser.add_argument("--disable-docker-build", action="store_true", dest="disable_docker_build")
    parser.add_argument(
        "--keep-builds",
        action="store_true",
        dest="keep_builds",
        help="Reuse existing build output instead of deleting the build folder.",
    )
    parser.add_argument(
        "--no-git-stash-push",
        action="store_false",
        dest="git_stash_push",
        help="Do not stash before building, and do not commit, tag or push afterwards.",
    )


def _register_subcommands(
    subparsers: argparse._SubParsersAction,  # type: ignore[type-arg]
    parent: argparse.ArgumentParser,
) -> None:
    """Register all subcommands with their handler functions."""
    build_parser = subparsers.add_parser("build", parents=[parent], help="Build, sign and publish a release.")
    _add_build_arguments(build_parser)
    build_parser.set_defaults(func=handle_build)

    targets_parser = subparsers.add_parser("targets", parents=[parent], help="List supported package targets.")
    targets_parser.set_defaults(func=handle_targets)

    key_parser = subparsers.add_parser("create-key", parents=[parent], help="Create a new update-signing keyfile.")
    key_parser.add_argument("--output", required=True, help="Where to write the keyfile.")
    key_parser.add_argument("--password", default=None, help="Keyfile password; prompted for when omitted.")
    key_parser.add_argument("--key-size", type=int, default=2048, dest="key_size", choices=[2048, 3072, 4096])
    key_parser.set_defaults(func=handle_create_key)

    verify_parser = subparsers.add_parser("verify", parents=[parent], help="Verify a manifest and its packages.")
    verify_parser.add_argument("--manifest", required=True, help="Signed manifest to check.")
    trust = verify_parser.add_mutually_exclusive_group(required=True)
    trust.add_argument("--keyfile", nargs="+", default=None, help="Keyfile(s) whose public keys are trusted.")
    trust.add_argument(
        "--public-keys",
        dest="public_keys",
        default=None,
        help="Sign-keys file with one public key XML per line.",
    )
    verify_parser.add_argument("--password", default=None, help="Password for --keyfile.")
    verify_parser.add_argument(
        "--packages-dir",
        dest="packages_dir",
        default=None,
        help="Folder holding the packages; defaults to the manifest's folder.",
    )
    verify_parser.set_defaults(func=handle_verify)


def main(argv: Optional[list[str]] = None) -> None:
    """
    Main CLI entrypoint. This is what pyproject.toml's [project.scripts] points to.

    If no subcommand is given, show help and exit with USER_ERROR.
    """
    parent = _build_global_parser()

    root_parser = argparse.ArgumentParser(
        prog="relbuild",
        description="relbuild: release builder for signed, auto-updating packages.",
        parents=[parent],
    )
    subparsers = root_parser.add_subparsers(dest="command")
    _register_subcommands(subparsers, parent)

    args = root_parser.parse_args(argv)

    if not hasattr(args, "func") or args.func is None:
        root_parser.print_help()
        sys.exit(USER_ERROR)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
