"""
DiNutri Offline CLI - Command Line Interface
Runs the gateway and stamps cache version tokens for new deployments
"""

import argparse
import re
import sys
from pathlib import Path

from dinutri_offline.config import generate_cache_version

CACHE_VERSION_LINE = re.compile(r"^CACHE_VERSION=.*$", re.MULTILINE)


def stamp_env_file(env_file: Path, version: str) -> None:
    """Write ``CACHE_VERSION=<version>`` into ``env_file``, replacing any old value."""
    content = env_file.read_text(encoding="utf-8") if env_file.exists() else ""
    line = f"CACHE_VERSION={version}"
    if CACHE_VERSION_LINE.search(content):
        content = CACHE_VERSION_LINE.sub(line, content)
    else:
        if content and not content.endswith("\n"):
            content += "\n"
        content += line + "\n"
    env_file.write_text(content, encoding="utf-8")


def stamp_version_command(args: argparse.Namespace) -> None:
    """Generate a fresh cache version token"""
    version = generate_cache_version()
    if args.env_file:
        stamp_env_file(Path(args.env_file), version)
        print(f"Cache version {version} written to {args.env_file}")
    else:
        print(version)


def serve_command(args: argparse.Namespace) -> None:
    """Run the gateway"""
    from dinutri_offline.main import cli as serve

    serve()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dinutri-offline",
        description="DiNutri offline-first caching gateway",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the gateway")
    serve_parser.set_defaults(func=serve_command)

    stamp_parser = subparsers.add_parser(
        "stamp-version", help="Generate a cache version token for a new deployment"
    )
    stamp_parser.add_argument(
        "--env-file", help="Write CACHE_VERSION into this env file instead of printing"
    )
    stamp_parser.set_defaults(func=stamp_version_command)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    args.func(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
