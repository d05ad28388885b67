"""FGOBot 异常层级体系。

层级树::

    FGOBotError
    ├── ConfigError
    ├── ControllerStateError
    └── AutomationError
        ├── PerceptionFailure
        ├── ActionExecutionFailure
        ├── DecisionFailure
        ├── FatalThresholdError
        └── ResourceExhaustion

单轮循环中的 ``PerceptionFailure`` / ``ActionExecutionFailure`` 均可恢复，
计入连续失败次数；``FatalThresholdError`` 与 ``ResourceExhaustion`` 终止会话。
"""

from __future__ import annotations


# ── 基类 ──


class FGOBotError(Exception):
    """所有 FGOBot 异常的基类。"""


# ── 基础设施异常 ──


class ConfigError(FGOBotError):
    """配置错误（文件缺失、字段非法等）。"""


class ControllerStateError(FGOBotError):
    """在当前会话状态下不允许的调用。"""


# ── 自动化异常 ──


class AutomationError(FGOBotError):
    """自动化循环相关错误。"""


class PerceptionFailure(AutomationError):
    """截图或画面识别失败。"""


class ActionExecutionFailure(AutomationError):
    """操作端口报告执行失败。"""

    def __init__(self, action_name: str, reason: str = "") -> None:
        self.action_name = action_name
        msg = f"操作失败: {action_name}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class DecisionFailure(AutomationError):
    """决策计算内部错误（引擎内部转换为恢复决策，不向外抛出）。"""


class FatalThresholdError(AutomationError):
    """连续失败次数达到阈值，需要外部重新启动。"""

    def __init__(self, consecutive_errors: int) -> None:
        self.consecutive_errors = consecutive_errors
        super().__init__(f"连续失败 {consecutive_errors} 次，自动化终止")


class ResourceExhaustion(AutomationError):
    """资源耗尽（如 AP 不足），会话正常结束而非出错。"""
