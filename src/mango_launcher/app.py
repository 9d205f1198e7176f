"""mango-launcher 命令行入口。

用法:
    mango-launcher launch 1.20.4 --username Steve
    mango-launcher versions
    mango-launcher runtime 1.20.4

launch 子命令把转发消息以 JSON 行的形式输出到 stdout，
进程退出码与游戏退出码一致（启动失败为 1）。日志输出到 stderr。
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from .config import Config, get_config
from .errors import ProvisionError
from .launch import (
    Identity,
    LaunchRequest,
    MemoryBounds,
    ProcessSupervisor,
    ProgressCategory,
    ProgressEvent,
    SidecarCapability,
    Variant,
)
from .launcher import Launcher, installed_versions
from .relay import EventRelay, RelayMessage
from .runtime import RuntimeManager, RuntimeProvisioner, provision_dir_for

__all__ = ["main", "build_parser"]

logger = logging.getLogger(__name__)


def _configure_logging(config: Config) -> None:
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr，stdout 留给消息流
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 mango_launcher 命名空间启用详细日志
    logging.getLogger("mango_launcher").setLevel(log_level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mango-launcher",
        description="Acquire a runtime and launch a game distribution.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    launch = sub.add_parser("launch", help="launch a game version")
    launch.add_argument("version", help="distribution version, e.g. 1.20.4")
    launch.add_argument(
        "--variant",
        choices=[v.value for v in Variant],
        default=Variant.VANILLA.value,
    )
    launch.add_argument("--username", default="", help="offline display name")
    launch.add_argument("--auth-file", type=Path, help="JSON file with authorization material")
    launch.add_argument("--root", type=Path, help="installation root (overrides MANGO_HOME)")
    launch.add_argument("--memory-max", help="JVM max memory, e.g. 4G")
    launch.add_argument("--memory-min", help="JVM min memory, e.g. 2G")

    versions = sub.add_parser("versions", help="list installed versions")
    versions.add_argument("--root", type=Path)

    runtime = sub.add_parser("runtime", help="ensure a runtime for a version")
    runtime.add_argument("version")
    runtime.add_argument("--root", type=Path)

    return parser


def _print_message(message: RelayMessage) -> None:
    sys.stdout.write(message.model_dump_json() + "\n")
    sys.stdout.flush()


def _runtime_factory(config: Config, relay: EventRelay | None = None):
    """按配置创建 RuntimeManager 的工厂；下载进度转发为 other 类进度。"""

    def on_download(received: int, total: int) -> None:
        if relay is not None and total > 0:
            relay.progress(ProgressEvent.create(ProgressCategory.OTHER, received, total))

    def factory(install_root: Path) -> RuntimeManager:
        provisioner = RuntimeProvisioner(
            provision_dir_for(install_root),
            endpoint=config.runtime_endpoint,
            max_redirects=config.max_redirects,
            on_progress=on_download,
        )
        return RuntimeManager(install_root, provisioner=provisioner)

    return factory


def _load_auth(path: Path | None) -> dict[str, Any] | None:
    if path is None:
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("authorization file must contain a JSON object")
    return data


def _memory(args: argparse.Namespace, config: Config) -> MemoryBounds | None:
    max_ = args.memory_max or config.memory_max
    min_ = args.memory_min or config.memory_min
    if not max_ and not min_:
        return None
    defaults = MemoryBounds()
    return MemoryBounds(max=max_ or defaults.max, min=min_ or defaults.min)


async def run_launch(args: argparse.Namespace, config: Config) -> int:
    """执行 launch 子命令，返回进程退出码。"""
    try:
        auth = _load_auth(args.auth_file)
    except (OSError, ValueError) as e:
        logger.error(f"Cannot read authorization file: {e}")
        return 1

    relay = EventRelay(interval=config.progress_interval, sink=_print_message, buffered=False)
    capability = SidecarCapability(config.sidecar_command)
    supervisor = ProcessSupervisor(capability, relay)
    launcher = Launcher(supervisor, relay, runtime_factory=_runtime_factory(config, relay))

    request = LaunchRequest(
        distribution_version=args.version,
        install_root=args.root or config.install_root,
        variant=Variant(args.variant),
        identity=Identity(display_name=args.username, auth_token=auth),
        memory=_memory(args, config),
    )

    try:
        result = await launcher.launch(request)
        if not result.success or result.session is None:
            return 1
        code = await result.session.wait()
        return code if code is not None else 1
    finally:
        await capability.aclose()
        relay.shutdown()


async def run_runtime(args: argparse.Namespace, config: Config) -> int:
    """执行 runtime 子命令：确保运行时存在并输出描述。"""
    manager = _runtime_factory(config)(args.root or config.install_root)
    try:
        runtime = await manager.ensure(args.version)
    except ProvisionError as e:
        logger.error(f"Runtime setup failed: {e}")
        return 1
    finally:
        await manager.close()

    print(json.dumps(runtime.to_dict(), ensure_ascii=False))
    return 0


def run_versions(args: argparse.Namespace, config: Config) -> int:
    for version in installed_versions(args.root or config.install_root):
        print(version)
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """主入口点。"""
    args = build_parser().parse_args(argv)
    config = get_config()
    _configure_logging(config)
    logger.debug(f"Loaded {config!r}")

    if args.command == "launch":
        code = asyncio.run(run_launch(args, config))
    elif args.command == "runtime":
        code = asyncio.run(run_runtime(args, config))
    else:
        code = run_versions(args, config)

    sys.exit(code)


if __name__ == "__main__":
    main()
