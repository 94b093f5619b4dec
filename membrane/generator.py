"""Generation pipeline: registration phase, reflection pass, then the emitters"""

import logging
from pathlib import Path
from typing import Optional

from .bridge_generator import BridgeGenerator
from .common_generator import CommonGenerator
from .config import GeneratorConfig
from .dart_generator import DartGenerator
from .dart_type_generator import DartTypeGenerator
from .errors import MembraneError
from .header_generator import HeaderGenerator
from .parser import module_path_for, parse_source
from .reflection import Reflection, ReflectionPass
from .registry import Registry

logger = logging.getLogger(__name__)


class Membrane:
    """Collects declarations from Rust sources and generates every output from them"""

    def __init__(self, config: GeneratorConfig):
        self.config = config
        self.registry = Registry()
        self._reflection: Optional[Reflection] = None

    def register_source(self, text: str, module_path: tuple = ()) -> "Membrane":
        self.registry.register(parse_source(text, tuple(module_path)))
        self._reflection = None
        return self

    def register_file(self, path, source_root=None) -> "Membrane":
        path = Path(path)
        root = Path(source_root) if source_root is not None else self.config.source_root
        logger.debug("scanning %s", path)
        return self.register_source(path.read_text(encoding="utf-8"), module_path_for(path, root))

    def register_directory(self, root=None) -> "Membrane":
        root = Path(root) if root is not None else self.config.source_root
        if not root.is_dir():
            raise MembraneError(f"source root {root} is not a directory")
        paths = sorted(root.rglob("*.rs"))
        if not paths:
            logger.warning("no Rust sources found under %s", root)
        for path in paths:
            self.register_file(path, root)
        return self

    def reflect(self) -> Reflection:
        if self._reflection is None:
            self._reflection = ReflectionPass(self.registry).run()
        return self._reflection

    def namespaces(self) -> list[str]:
        known = self.registry.namespaces()
        for namespace in self.config.namespaces:
            if namespace not in known:
                raise MembraneError(f"unknown namespace `{namespace}`, found: {', '.join(known) or 'none'}")
        return [ns for ns in known if self.config.wants(ns)]

    def generate(self) -> dict[str, str]:
        """Map of output paths, relative to the destination, to their contents"""
        reflection = self.reflect()
        namespaces = self.namespaces()
        files = {}

        # the native library exports every namespace, whatever the client filter
        if self.config.generate_rust:
            files.update(BridgeGenerator(self.registry).generate())

        for namespace in namespaces:
            if self.config.generate_headers:
                files[f"lib/src/{namespace}/{namespace}.h"] = HeaderGenerator(self.registry, namespace).generate()
            if self.config.generate_dart:
                files[f"lib/{namespace}.dart"] = DartGenerator(self.registry, reflection, namespace).generate()

        if self.config.generate_dart:
            files["lib/src/membrane.dart"] = CommonGenerator(self.config.lib_name).generate()
            used = {}
            for namespace in namespaces:
                for schema in reflection.types_for(namespace):
                    used[schema.name] = schema
            files.update(DartTypeGenerator(used).generate())

        logger.debug("generated %d files for %d namespaces", len(files), len(namespaces))
        return files

    def write(self, destination=None) -> list[Path]:
        destination = Path(destination) if destination is not None else self.config.destination
        paths = []
        for relative, content in self.generate().items():
            path = destination / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            logger.debug("wrote %s", path)
            paths.append(path)
        return paths
