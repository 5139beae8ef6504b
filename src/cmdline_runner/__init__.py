"""cmdline-runner - 运行外部命令并实时采集输出。

功能:
    - 并发读取 stdout/stderr，按到达顺序合并输出
    - 按行脱敏（redact）敏感字符串
    - 通过 stdin 传入文本
    - 进度显示回调（ProgressSink）
    - 协作式取消，取消时强制终止子进程

用法:
    result = await CmdLineRunner("echo").arg("hello").execute()
"""

__version__ = "0.1.0"

from .cancel import CancellationToken
from .errors import CmdError, CommandCancelled, InternalError, ScriptFailed, SpawnError
from .log import setup_logging
from .progress import ProgressSink, ProgressStatus, StreamProgressSink
from .redaction import REDACTED, redact
from .registry import PidRegistry, default_registry
from .runner import CmdLineRunner, run
from .runtime import ExitStatus, RunConfig, RunResult, Supervisor
from .signal_manager import SignalManager, SigintMode

__all__ = [
    "__version__",
    "CancellationToken",
    "CmdError",
    "CmdLineRunner",
    "CommandCancelled",
    "ExitStatus",
    "InternalError",
    "PidRegistry",
    "ProgressSink",
    "ProgressStatus",
    "REDACTED",
    "RunConfig",
    "RunResult",
    "ScriptFailed",
    "SignalManager",
    "SigintMode",
    "SpawnError",
    "StreamProgressSink",
    "Supervisor",
    "default_registry",
    "redact",
    "run",
    "setup_logging",
]
