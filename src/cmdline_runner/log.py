"""日志配置。

库本身只通过 logging.getLogger(__name__) 记录日志；
嵌入方可以调用 setup_logging() 获得与 CMDR_LOG_DEBUG 一致的默认输出。
"""

from __future__ import annotations

import logging
import sys

from .config import Config, get_config

__all__ = ["LOG_FORMAT", "setup_logging"]

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(config: Config | None = None) -> logging.Logger:
    """配置日志输出。

    - CMDR_LOG_DEBUG 开启时：DEBUG 级别，输出到临时文件
    - 默认：INFO 级别，输出到 stderr

    root logger（第三方库）保持 WARNING，只对 cmdline_runner 命名空间启用详细日志。

    Args:
        config: 配置（默认使用全局配置）

    Returns:
        cmdline_runner 命名空间的 logger
    """
    config = config or get_config()

    handler: logging.Handler
    if config.log_debug and config.log_file:
        handler = logging.FileHandler(config.log_file, encoding="utf-8")
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        log_level = logging.INFO
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.basicConfig(level=logging.WARNING, handlers=[handler])

    package_logger = logging.getLogger("cmdline_runner")
    package_logger.setLevel(log_level)
    return package_logger
