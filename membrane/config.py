"""Generator configuration"""

import argparse
import re
from dataclasses import dataclass, field
from pathlib import Path

from .errors import MembraneError

PACKAGE_NAME_RE = re.compile(r"[a-z][a-z0-9_]*")


@dataclass
class GeneratorConfig:
    """Where sources are read from, where output goes and which outputs are produced"""
    package_name: str
    lib_name: str = ""
    destination: Path = Path("generated")
    source_root: Path = Path("src")
    namespaces: list[str] = field(default_factory=list)
    generate_rust: bool = True
    generate_headers: bool = True
    generate_dart: bool = True

    def __post_init__(self):
        self.destination = Path(self.destination)
        self.source_root = Path(self.source_root)
        if not PACKAGE_NAME_RE.fullmatch(self.package_name):
            raise MembraneError(
                f"invalid package name `{self.package_name}`: use lowercase letters, digits and underscores")
        if not self.lib_name:
            self.lib_name = self.package_name
        if not re.fullmatch(r"[A-Za-z0-9_\-]+", self.lib_name):
            raise MembraneError(f"invalid library name `{self.lib_name}`")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "GeneratorConfig":
        source_root = Path(args.source_root)
        package_name = args.package_name
        if not package_name:
            # the crate directory, e.g. `example` for `example/src`
            crate = source_root.resolve().parent if source_root.name == "src" else source_root.resolve()
            package_name = crate.name.replace("-", "_").lower()
        return cls(
            package_name=package_name,
            lib_name=args.lib_name or "",
            destination=Path(args.output_dir),
            source_root=source_root,
            namespaces=list(args.namespace or []),
            generate_rust=not args.no_rust,
            generate_headers=not args.no_headers,
            generate_dart=not args.no_dart,
        )

    def wants(self, namespace: str) -> bool:
        return not self.namespaces or namespace in self.namespaces
