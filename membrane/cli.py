"""Command line driver"""

import argparse
import logging
import sys
import time

from .config import GeneratorConfig
from .errors import MembraneError
from .generator import Membrane


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate Rust FFI entry points and Dart bindings")
    parser.add_argument("source_root", nargs="?", help="Rust source directory (positional)")
    parser.add_argument("--source-root", dest="source_root_option", help="Rust source directory (alternative)")
    parser.add_argument("--output-dir", "-o", default="generated", help="Output directory")
    parser.add_argument("--package-name", "-p", default="", help="Dart package name (default: crate directory name)")
    parser.add_argument("--lib-name", default="", help="Native library name (default: package name)")
    parser.add_argument("--namespace", "-n", action="append", help="Only generate this namespace (repeatable)")
    parser.add_argument("--no-rust", action="store_true", help="Skip the Rust bridge")
    parser.add_argument("--no-headers", action="store_true", help="Skip the C headers")
    parser.add_argument("--no-dart", action="store_true", help="Skip the Dart bindings")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def main(argv=None) -> int:
    start_time = time.perf_counter()

    parser = build_parser()
    args = parser.parse_args(argv)

    # Support both positional and --source-root argument
    args.source_root = args.source_root or args.source_root_option
    if not args.source_root:
        parser.error("source directory is required (positional or --source-root)")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        membrane = Membrane(GeneratorConfig.from_args(args))
        membrane.register_directory()
        paths = membrane.write()
    except MembraneError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    for path in paths:
        print(f"Generated: {path}")

    elapsed = time.perf_counter() - start_time
    print(f"Generation completed in {elapsed*1000:.2f} ms")
    return 0


if __name__ == "__main__":
    sys.exit(main())
