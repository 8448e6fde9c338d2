"""Tests for the command line interface."""

from __future__ import annotations

import os

import pytest
import yaml
from typer.testing import CliRunner

from treecmp.main import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Run every command from an empty directory so no stray config file is picked up."""
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


class TestCompare:
    def test_only_in_a(self, make_tree):
        a = make_tree("a", {"f1": "x" * 100})
        b = make_tree("b", {})

        result = runner.invoke(app, ["compare", str(a), str(b)])

        assert result.exit_code == 1
        assert "==== Only in A (1) ====\nf1\n" in result.output
        assert "==== Only in B (0) ====\n(empty)\n" in result.output

    def test_nested_difference(self, make_tree):
        a = make_tree("a", {"f1": "x" * 10, "dir/f2": "y" * 5})
        b = make_tree("b", {"f1": "x" * 10, "dir/f2": "y" * 99})

        result = runner.invoke(app, ["compare", str(a), str(b)])

        assert result.exit_code == 1
        assert "==== Differ (1) ====\ndir/f2\n" in result.output

    def test_equivalent_trees(self, make_tree):
        a = make_tree("a", {"a": "1", "b": "22"})
        b = make_tree("b", {"a": "1", "b": "22"})

        result = runner.invoke(app, ["compare", "--show-same", str(a), str(b)])

        assert result.exit_code == 0
        assert "==== Same (2) ====\na\nb\n" in result.output

    def test_mtime_only_change_is_not_a_difference(self, make_tree):
        a = make_tree("a", {"f": "same"})
        b = make_tree("b", {"f": "same"})
        os.utime(b / "f", (1_000_000, 1_000_000))

        assert runner.invoke(app, ["compare", str(a), str(b)]).exit_code == 0

    def test_checksum_mode(self, make_tree):
        a = make_tree("a", {"f": "aaaa"})
        b = make_tree("b", {"f": "bbbb"})

        assert runner.invoke(app, ["compare", str(a), str(b)]).exit_code == 0

        result = runner.invoke(app, ["compare", "-c", str(a), str(b)])
        assert result.exit_code == 1
        assert "==== Differ (1) ====\nf\n" in result.output

    def test_exclude_pattern(self, make_tree):
        a = make_tree("a", {"keep": "1", "x.tmp": "junk"})
        b = make_tree("b", {"keep": "1"})

        result = runner.invoke(app, ["compare", "-x", "*.tmp", str(a), str(b)])

        assert result.exit_code == 0
        assert "x.tmp" not in result.output

    def test_excludes_from_config_file(self, make_tree, isolated_cwd):
        a = make_tree("a", {"keep": "1", "cache/blob": "2"})
        b = make_tree("b", {"keep": "1"})
        (isolated_cwd / "treecmp.yaml").write_text(yaml.safe_dump({"config": {"excludes": ["cache/"]}}))

        assert runner.invoke(app, ["compare", str(a), str(b)]).exit_code == 0

    def test_csv_export(self, make_tree, isolated_cwd):
        a = make_tree("a", {"only_a": "12", "changed": "1", "same": "s"})
        b = make_tree("b", {"only,b": "123", "changed": "22", "same": "s"})

        result = runner.invoke(app, ["compare", "-o", "diff.csv", str(a), str(b)])

        assert result.exit_code == 1
        lines = (isolated_cwd / "diff.csv").read_text(encoding="utf-8").splitlines()
        assert lines == [
            "status,path,size_in_A,size_in_B",
            "ONLY_A,only_a,2,",
            'ONLY_B,"only,b",,3',
            "DIFFER,changed,1,2",
        ]

    def test_csv_failure_exit_status(self, make_tree, tmp_path):
        a = make_tree("a", {"f": "1"})
        b = make_tree("b", {"f": "1"})

        result = runner.invoke(app, ["compare", "--csv", str(tmp_path / "no" / "out.csv"), str(a), str(b)])

        assert result.exit_code == 3
        assert "Cannot write" in result.output

    def test_missing_directory(self, make_tree, tmp_path):
        a = make_tree("a", {"f": "1"})

        result = runner.invoke(app, ["compare", str(a), str(tmp_path / "missing")])

        assert result.exit_code == 2
        assert "does not exist" in result.output
        assert "====" not in result.output

    def test_undecodable_file_name(self, make_tree, isolated_cwd):
        a = make_tree("a", {"ok": "1"})
        b = make_tree("b", {"ok": "1"})
        with open(os.fsencode(a) + b"/bad\xffname", "wb") as f:
            f.write(b"data")

        result = runner.invoke(app, ["compare", "-o", "diff.csv", str(a), str(b)])

        assert result.exit_code == 1
        assert "==== Only in A (1) ====\nbad\\xffname\n" in result.output
        lines = (isolated_cwd / "diff.csv").read_text(encoding="utf-8").splitlines()
        assert lines[1:] == ["ONLY_A,bad\\xffname,4,"]

    def test_missing_explicit_config_file(self, make_tree, tmp_path):
        a = make_tree("a", {})

        result = runner.invoke(app, ["compare", "--config", str(tmp_path / "typo.yaml"), str(a), str(a)])

        assert result.exit_code == 2
        assert "Missing config file" in result.output

    def test_explicit_config_file(self, make_tree, tmp_path):
        a = make_tree("a", {"keep": "1", "x.log": "2"})
        b = make_tree("b", {"keep": "1"})
        cfg = tmp_path / "other.yaml"
        cfg.write_text(yaml.safe_dump({"config": {"excludes": ["*.log"]}}))

        assert runner.invoke(app, ["compare", "--config", str(cfg), str(a), str(b)]).exit_code == 0

    def test_missing_argument(self, make_tree):
        a = make_tree("a", {})
        assert runner.invoke(app, ["compare", str(a)]).exit_code == 2

    def test_bad_chunk_size(self, make_tree):
        a = make_tree("a", {})
        result = runner.invoke(app, ["compare", "--chunk-size", "lots", str(a), str(a)])
        assert result.exit_code == 2

    def test_invalid_config_file(self, make_tree, isolated_cwd):
        a = make_tree("a", {})
        (isolated_cwd / "treecmp.yaml").write_text("config: 3\n")

        result = runner.invoke(app, ["compare", str(a), str(a)])

        assert result.exit_code == 2
        assert "Error:" in result.output


class TestFind:
    def test_hits_are_listed(self, make_tree):
        root = make_tree("media", {"TheGambler.mkv": "12345"})

        result = runner.invoke(app, ["find", "-p", str(root), "gambler"])

        assert result.exit_code == 0
        assert f"Size: 5 bytes\tLocation: {root / 'TheGambler.mkv'}" in result.output

    def test_no_hits(self, make_tree):
        root = make_tree("media", {"a.txt": "1"})

        result = runner.invoke(app, ["find", "-p", str(root), "gambler"])

        assert result.exit_code == 0
        assert "No files matching 'gambler'" in result.output

    def test_missing_start(self, tmp_path):
        assert runner.invoke(app, ["find", "-p", str(tmp_path / "nope"), "x"]).exit_code == 2


class TestBiggest:
    def test_reports_largest(self, make_tree):
        root = make_tree("base", {"big/a": "x" * 2048, "small": "y"})

        result = runner.invoke(app, ["biggest", str(root)])

        assert result.exit_code == 0
        assert f"• Path: {root / 'big'}" in result.output
        assert "• Size: 2.0 KB" in result.output

    def test_dirs_only_without_subdirectories(self, make_tree):
        root = make_tree("base", {"file": "x"})

        result = runner.invoke(app, ["biggest", "--dirs-only", str(root)])

        assert result.exit_code == 0
        assert "No subdirectories" in result.output

    def test_not_a_directory(self, tmp_path):
        assert runner.invoke(app, ["biggest", str(tmp_path / "nope")]).exit_code == 2


class TestInitAndVersion:
    def test_init_writes_config(self, isolated_cwd):
        result = runner.invoke(app, ["init", "-x", "*.tmp", "--max-workers", "2", "--chunk-size", "64K"])

        assert result.exit_code == 0
        raw = yaml.safe_load((isolated_cwd / "treecmp.yaml").read_text())
        assert raw["config"]["excludes"] == ["*.tmp"]
        assert raw["config"]["max_workers"] == 2
        assert raw["config"]["chunk_size"] == 64 * 1024

    def test_init_refuses_to_overwrite(self, isolated_cwd):
        (isolated_cwd / "treecmp.yaml").write_text("config: {}\n")

        result = runner.invoke(app, ["init"])

        assert result.exit_code == 1
        assert "--force" in result.output
        assert runner.invoke(app, ["init", "--force"]).exit_code == 0

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.strip()
