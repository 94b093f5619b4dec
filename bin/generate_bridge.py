#!/usr/bin/env python3
"""
Async FFI Bridge Generator

Scans a Rust crate for #[async_dart] declarations and generates:
  1. Rust extern "C" entry points (one file per declaring module)
  2. C headers, one per namespace
  3. Dart bindings: API classes, data classes and enums

Usage:
    python generate_bridge.py example/src --output-dir generated/
    python generate_bridge.py example/src -o generated/ --namespace accounts --no-rust
"""

import sys
from pathlib import Path

# Add parent directory to path so membrane package can be found
sys.path.insert(0, str(Path(__file__).parent.parent))

from membrane.cli import main


if __name__ == "__main__":
    sys.exit(main())
