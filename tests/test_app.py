"""命令行入口测试。"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from mango_launcher.app import build_parser, main, run_launch
from mango_launcher.config import Config

FAKE_SIDECAR = Path(__file__).parent / "fixtures" / "fake_sidecar.py"


def _config(install_root: Path) -> Config:
    return Config(
        install_root=install_root,
        sidecar_command=[sys.executable, str(FAKE_SIDECAR)],
        progress_interval=0.05,
    )


def _json_lines(text: str) -> list[dict]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


class TestParser:
    """测试参数解析。"""

    def test_launch_defaults(self):
        args = build_parser().parse_args(["launch", "1.20.4"])
        assert args.command == "launch"
        assert args.version == "1.20.4"
        assert args.variant == "vanilla"
        assert args.root is None

    def test_launch_options(self, tmp_path: Path):
        args = build_parser().parse_args([
            "launch", "1.20.1", "--variant", "fabric", "--username", "Steve",
            "--root", str(tmp_path), "--memory-max", "6G",
        ])
        assert args.variant == "fabric"
        assert args.username == "Steve"
        assert args.root == tmp_path
        assert args.memory_max == "6G"
        assert args.memory_min is None

    def test_unknown_variant(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["launch", "1.20.4", "--variant", "quilt"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestVersionsCommand:
    """测试 versions 子命令。"""

    def test_lists_installed(self, install_root: Path, capsys):
        (install_root / "versions" / "1.20.4").mkdir(parents=True)
        (install_root / "versions" / "1.12.2").mkdir(parents=True)

        with pytest.raises(SystemExit) as exc_info:
            main(["versions", "--root", str(install_root)])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.split() == ["1.12.2", "1.20.4"]


@pytest.mark.integration
class TestLaunchCommand:
    """测试 launch 子命令（fake sidecar + 预置运行时）。"""

    @pytest.fixture
    def provisioned(self, install_root: Path, make_runtime) -> Path:
        # 系统运行时存在与否都可以：预置的运行时保证探测一定成功
        return make_runtime(install_root / "runtime" / "java", name="jdk-17")

    @pytest.mark.asyncio
    async def test_prints_json_lines(self, install_root: Path, provisioned: Path, capsys):
        args = build_parser().parse_args(["launch", "1.20.4", "--username", "Steve"])

        code = await run_launch(args, _config(install_root))

        assert code == 0
        messages = _json_lines(capsys.readouterr().out)
        assert messages[0]["type"] == "status"
        assert messages[0]["text"] == "Checking runtime..."
        assert messages[-1]["type"] == "close"
        assert messages[-1]["code"] == 0
        assert {"status", "progress", "log", "close"} <= {m["type"] for m in messages}

    @pytest.mark.asyncio
    async def test_exit_code_passthrough(self, install_root: Path, provisioned: Path, capsys, monkeypatch):
        monkeypatch.setenv("FAKE_SIDECAR_EXIT", "5")
        args = build_parser().parse_args(["launch", "1.20.4"])

        code = await run_launch(args, _config(install_root))

        assert code == 5
        messages = _json_lines(capsys.readouterr().out)
        assert [m["type"] for m in messages[-2:]] == ["close", "error"]

    @pytest.mark.asyncio
    async def test_bad_auth_file(self, install_root: Path, tmp_path: Path):
        auth = tmp_path / "auth.json"
        auth.write_text("[1, 2]", encoding="utf-8")
        args = build_parser().parse_args(["launch", "1.20.4", "--auth-file", str(auth)])

        assert await run_launch(args, _config(install_root)) == 1

    @pytest.mark.asyncio
    async def test_sidecar_missing(self, install_root: Path, provisioned: Path, capsys):
        config = _config(install_root)
        config.sidecar_command = ["definitely-not-a-real-sidecar-mango"]
        args = build_parser().parse_args(["launch", "1.20.4"])

        assert await run_launch(args, config) == 1
        messages = _json_lines(capsys.readouterr().out)
        assert messages[-1]["type"] == "error"
