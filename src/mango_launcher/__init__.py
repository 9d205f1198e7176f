"""Mango Launcher - 运行时获取与游戏进程启动编排。

环境变量:
    MANGO_HOME: 安装根目录
    MANGO_SIDECAR: 启动器 sidecar 命令行
    MANGO_RUNTIME_ENDPOINT: 运行时下载 API 根地址
    MANGO_LOG_DEBUG: 调试日志输出到临时文件

用法:
    mango-launcher launch 1.20.4
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
