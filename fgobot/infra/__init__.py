"""基础设施层 — 日志、配置、异常体系、文件工具。"""

from .config import (
    AutomationConfig,
    ConfigManager,
    DecisionConfig,
    LayoutConfig,
    LogConfig,
    UserConfig,
)
from .exceptions import (
    ActionExecutionFailure,
    AutomationError,
    ConfigError,
    ControllerStateError,
    DecisionFailure,
    FatalThresholdError,
    FGOBotError,
    PerceptionFailure,
    ResourceExhaustion,
)
from .file_utils import load_yaml, merge_dicts, save_yaml
from .logger import save_image, setup_logger

__all__ = [
    # config
    "AutomationConfig",
    "ConfigManager",
    "DecisionConfig",
    "LayoutConfig",
    "LogConfig",
    "UserConfig",
    # exceptions
    "ActionExecutionFailure",
    "AutomationError",
    "ConfigError",
    "ControllerStateError",
    "DecisionFailure",
    "FatalThresholdError",
    "FGOBotError",
    "PerceptionFailure",
    "ResourceExhaustion",
    # file_utils
    "load_yaml",
    "merge_dicts",
    "save_yaml",
    # logger
    "setup_logger",
    "save_image",
]
