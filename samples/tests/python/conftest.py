import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[3]
SAMPLE_SRC = ROOT / "samples" / "example" / "src"

# Add repository root to path so membrane package can be found
sys.path.insert(0, str(ROOT))

from membrane import GeneratorConfig, Membrane  # noqa: E402


def make_membrane(**overrides) -> Membrane:
    options = dict(package_name="example", source_root=SAMPLE_SRC)
    options.update(overrides)
    return Membrane(GeneratorConfig(**options))


@pytest.fixture
def sample() -> Membrane:
    """The example crate, fully registered"""
    return make_membrane().register_directory()


@pytest.fixture
def files(sample) -> dict:
    return sample.generate()
