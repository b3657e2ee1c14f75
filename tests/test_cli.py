"""
Tests for CLI commands — lifecycle actions, resolution, cache, registry.
"""

import json
import logging
from pathlib import Path

import pytest
from click.testing import CliRunner

from quill.main import cli


@pytest.fixture(autouse=True)
def restore_root_logger():
    """The CLI configures logging on every invocation."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def invoke(ctx, registry):
    """Run the CLI against the test context and in-memory registry."""

    def _invoke(*args: str):
        runner = CliRunner()
        return runner.invoke(cli, list(args), obj={"context": ctx, "registry": registry})

    return _invoke


@pytest.fixture
def x(publish):
    publish("x", "1.0.0", scripts={
        "install.sh": "echo Installing X",
        "configure.sh": 'echo "Configuring X for $quill_db_host"',
        "uninstall.sh": "echo Uninstalling X",
    }, config={"db": {"host": "localhost"}})


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("install", "configure", "update", "start", "uninstall",
                        "deps", "runlist", "cache", "installed", "watch", "publish"):
            assert command in result.output

    def test_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.4.0" in result.output

    def test_missing_config_file(self, tmp_path: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["-c", str(tmp_path / "nope.yml"), "cache", "list"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_config_file_paths(self, tmp_path: Path):
        config = tmp_path / ".quillconf"
        config.write_text(f"root: {tmp_path / 'root'}\n")
        runner = CliRunner()
        result = runner.invoke(cli, ["-c", str(config), "cache", "list"])
        assert result.exit_code == 0
        assert "No systems in cache." in result.output


class TestLifecycleCommands:
    """Tests for install / configure / uninstall."""

    def test_install(self, invoke, x):
        result = invoke("install", "x")
        assert result.exit_code == 0, result.output
        assert "Installing X" in result.output
        assert "✅ Installed x@1.0.0" in result.output

    def test_install_again(self, invoke, x):
        invoke("install", "x")
        result = invoke("install", "x")
        assert result.exit_code == 0
        assert "Installing X" not in result.output
        assert "No scripts needed to run." in result.output

    def test_force(self, invoke, x):
        invoke("install", "x")
        result = invoke("install", "x", "--force")
        assert result.exit_code == 0
        assert result.output.index("Uninstalling X") < result.output.index("Installing X")

    def test_configure_with_override(self, invoke, x):
        result = invoke("configure", "x", "-s", "db.host=db.internal")
        assert result.exit_code == 0
        assert "Configuring X for db.internal" in result.output

    def test_json_output(self, invoke, x):
        result = invoke("configure", "x", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data == [{"name": "x", "version": "1.0.0", "scripts": ["install.sh", "configure.sh"]}]

    def test_uninstall(self, invoke, x, ctx):
        invoke("install", "x")
        result = invoke("uninstall", "x")
        assert result.exit_code == 0
        assert "Uninstalling X" in result.output
        assert not (ctx.install_dir / "x" / "1.0.0").exists()

    def test_unknown_system(self, invoke):
        result = invoke("install", "nope")
        assert result.exit_code == 1
        assert "❌" in result.output
        assert "unknown system" in result.output

    def test_script_failure(self, invoke, publish):
        publish("bad", "1.0.0", scripts={"install.sh": "exit 3"})
        result = invoke("install", "bad")
        assert result.exit_code == 1
        assert "exited with code 3" in result.output

    def test_requires_a_system(self, invoke):
        result = invoke("install")
        assert result.exit_code == 2


class TestResolutionCommands:
    """Tests for deps and runlist."""

    @pytest.fixture
    def tree(self, describe):
        describe("a", "0.0.1")
        describe("b", "0.2.0")
        describe("c", "0.3.0", dependencies={"b": "0.2.0"})
        describe(
            "dep-in-dep", "1.0.2",
            dependencies={"a": "0.0.1", "b": "0.2.0", "c": "0.3.0"},
            runlist=["c", "b", "a"],
        )
        describe("single-ubuntu-dep", "0.0.1", dependencies={"a": "0.0.1"}, os={"ubuntu": {"b": "0.2.0"}})

    def test_runlist(self, invoke, tree):
        result = invoke("runlist", "dep-in-dep")
        assert result.exit_code == 0
        assert result.output.strip() == "b@0.2.0 → c@0.3.0 → a@0.0.1 → dep-in-dep@1.0.2"

    def test_runlist_os(self, invoke, tree):
        result = invoke("runlist", "single-ubuntu-dep", "--os", "ubuntu", "--json")
        assert [m["name"] for m in json.loads(result.output)] == ["b", "a", "single-ubuntu-dep"]

    def test_runlist_max_depth(self, invoke, tree):
        result = invoke("runlist", "dep-in-dep", "--max-depth", "0")
        assert result.output.strip() == "dep-in-dep@1.0.2"

    def test_deps_tree(self, invoke, tree):
        result = invoke("deps", "dep-in-dep")
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0] == "dep-in-dep@1.0.2"
        assert "├── c@0.3.0" in lines
        assert "│   └── b@0.2.0" in lines
        assert lines[-1] == "└── a@0.0.1"

    def test_deps_json(self, invoke, tree):
        result = invoke("deps", "c", "--json")
        data = json.loads(result.output)
        assert data["c"]["dependencies"]["b"]["version"] == "0.2.0"


class TestCacheCommands:
    """Tests for cache list / clean."""

    def test_empty(self, invoke):
        result = invoke("cache", "list")
        assert "No systems in cache." in result.output

    def test_list_and_clean(self, invoke, x):
        invoke("install", "x")

        result = invoke("cache", "list")
        assert "x  1.0.0" in result.output
        assert json.loads(invoke("cache", "list", "--json").output) == {"x": ["1.0.0"]}

        result = invoke("cache", "clean", "x@1.0.0")
        assert "Removed 1 cached system(s)" in result.output
        assert "Nothing to clean." in invoke("cache", "clean").output


class TestInstalledCommands:
    """Tests for installed list / history."""

    def test_empty(self, invoke):
        assert "No systems installed." in invoke("installed", "list").output

    def test_list(self, invoke, x):
        invoke("install", "x@^1.0.0")
        result = invoke("installed", "list")
        assert "x@1.0.0  (^1.0.0)" in result.output

        data = json.loads(invoke("installed", "list", "--json").output)
        assert data["x"]["version"] == "1.0.0"
        assert data["x"]["dangling"] == 0

    def test_history(self, invoke, x):
        invoke("install", "x")
        result = invoke("installed", "history", "x")
        assert "install install.sh end" in result.output

        data = json.loads(invoke("installed", "history", "x", "--json").output)
        assert [e["action"] for e in data["entries"]] == ["copy", "install", "install"]

    def test_history_unknown(self, invoke):
        assert "No history for nope." in invoke("installed", "history", "nope").output


class TestRegistryCommands:
    """Tests for pack / publish / systems / configs."""

    def test_pack(self, invoke, make_system, tmp_path: Path):
        directory = make_system(tmp_path, "web", "1.0.0", scripts={"install.sh": "true"})
        out = tmp_path / "web.tgz"
        result = invoke("pack", str(directory), "-o", str(out))
        assert result.exit_code == 0
        assert "Packed web@1.0.0" in result.output
        assert out.is_file()

    def test_pack_invalid(self, invoke, tmp_path: Path):
        result = invoke("pack", str(tmp_path))
        assert result.exit_code == 1
        assert "no system.json" in result.output

    def test_publish(self, invoke, make_system, registry, tmp_path: Path):
        directory = make_system(tmp_path, "web", "1.0.0")
        result = invoke("publish", str(directory))
        assert result.exit_code == 0
        assert "Published web@1.0.0" in result.output
        assert registry.get_system("web").version == "1.0.0"
        assert registry.calls("upload") == ["web@1.0.0"]

    def test_systems_view(self, invoke, describe):
        describe("web", "1.0.0")
        describe("web", "1.1.0", dependencies={"a": "^1.0.0"}, runlist=["a"])
        result = invoke("systems", "view", "web")
        assert "web@1.1.0" in result.output
        assert "Versions: 1.0.0, 1.1.0" in result.output
        assert "a@^1.0.0" in result.output

    def test_systems_view_unknown(self, invoke):
        assert invoke("systems", "view", "nope").exit_code == 1

    def test_owners(self, invoke, describe, registry):
        describe("web", "1.0.0")
        assert invoke("systems", "add-owner", "web", "alice").exit_code == 0
        assert registry.owners("web") == ["alice"]
        assert invoke("systems", "remove-owner", "web", "alice").exit_code == 0
        assert registry.owners("web") == []

    def test_configs(self, invoke, registry):
        assert invoke("configs", "set", "prod", "db.host=p", "db.port=5432").exit_code == 0
        assert invoke("configs", "set", "prod", "db.host=q").exit_code == 0
        assert registry.get_config("prod") == {"db": {"host": "q", "port": "5432"}}

        assert invoke("configs", "list").output.strip() == "prod"
        assert json.loads(invoke("configs", "get", "prod").output) == {"db": {"host": "q", "port": "5432"}}

        assert invoke("configs", "delete", "prod").exit_code == 0
        assert invoke("configs", "get", "prod").exit_code == 1

    def test_configs_set_needs_pairs(self, invoke):
        result = invoke("configs", "set", "prod", "oops")
        assert result.exit_code == 1
        assert "Expected key=value" in result.output


class TestWatchCommand:
    """Tests for watch --once."""

    def test_up_to_date(self, invoke, x):
        invoke("install", "x@^1.0.0")
        result = invoke("watch", "--once")
        assert result.exit_code == 0
        assert "Everything is up to date." in result.output

    def test_updates(self, invoke, x, publish):
        invoke("install", "x@^1.0.0")
        publish("x", "1.1.0", scripts={"install.sh": "echo Installing X 1.1"})

        result = invoke("watch", "--once", "--json")
        assert result.exit_code == 0
        assert json.loads(result.output) == {"updated": ["x@1.1.0"]}
