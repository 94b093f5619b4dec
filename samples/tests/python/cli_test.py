"""Configuration and the command line driver"""

import pytest

from membrane import GeneratorConfig, MembraneError
from membrane.cli import build_parser, main

from conftest import SAMPLE_SRC


def test_config_defaults():
    config = GeneratorConfig(package_name="example")
    assert config.lib_name == "example"
    assert config.wants("anything")


@pytest.mark.parametrize("name", ["Example", "9lives", "my-app", ""])
def test_invalid_package_names(name):
    with pytest.raises(MembraneError, match="invalid package name"):
        GeneratorConfig(package_name=name)


def test_invalid_library_name():
    with pytest.raises(MembraneError, match="invalid library name"):
        GeneratorConfig(package_name="example", lib_name="lib example")


def test_config_from_args():
    args = build_parser().parse_args([str(SAMPLE_SRC), "-o", "out", "-n", "drawings", "--no-rust"])
    args.source_root = args.source_root or args.source_root_option
    config = GeneratorConfig.from_args(args)
    assert config.package_name == "example"
    assert config.lib_name == "example"
    assert config.namespaces == ["drawings"]
    assert config.generate_rust is False
    assert config.generate_dart is True
    assert config.wants("drawings") and not config.wants("accounts")


def test_main_writes_every_output(tmp_path, capsys):
    out = tmp_path / "generated"
    assert main(["--source-root", str(SAMPLE_SRC), "--output-dir", str(out), "--lib-name", "example_ffi"]) == 0

    assert (out / "bridge" / "application_accounts.rs").is_file()
    assert (out / "lib" / "src" / "accounts" / "accounts.h").is_file()
    assert "libexample_ffi.so" in (out / "lib" / "src" / "membrane.dart").read_text(encoding="utf-8")

    stdout = capsys.readouterr().out
    assert f"Generated: {out / 'lib' / 'accounts.dart'}" in stdout
    assert "Generation completed in" in stdout


def test_main_reports_malformed_sources(tmp_path, capsys):
    src = tmp_path / "broken" / "src"
    src.mkdir(parents=True)
    (src / "lib.rs").write_text(
        '#[async_dart(namespace = "broken")]\npub async fn f() -> Result<Vec<i32>, String> {}\n', encoding="utf-8")

    assert main([str(src), "-o", str(tmp_path / "out")]) == 1
    captured = capsys.readouterr()
    assert captured.err.startswith("error: f: ")
    assert not (tmp_path / "out").exists()


def test_main_reports_unknown_namespaces(tmp_path, capsys):
    assert main([str(SAMPLE_SRC), "-o", str(tmp_path), "-n", "billing"]) == 1
    assert "unknown namespace `billing`" in capsys.readouterr().err


def test_main_requires_a_source():
    with pytest.raises(SystemExit):
        main([])
