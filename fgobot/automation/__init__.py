"""自动化 — 会话状态机、主循环与决策执行。

模块组成::

    automation/
    ├── ports.py        # 截图 / 感知 / 操作端口接口
    ├── team.py         # 队伍配置
    ├── stats.py        # 会话统计与状态快照
    ├── actions.py      # 决策 → 触控操作
    └── controller.py   # 自动化控制器（主循环）

典型使用::

    from fgobot.automation import AutomationController, Team

    controller = AutomationController(capture, perception, actuation)
    controller.initialize()
    controller.start(Team(name="周回队"))
"""

from .ports import (
    ActuationPort,
    CaptureError,
    CapturePort,
    CaptureResult,
    CaptureSuccess,
    PerceptionPort,
)
from .team import Team
from .stats import AutomationStats, AutomationStatus
from .actions import ActionExecutor
from .controller import MAX_CONSECUTIVE_ERRORS, AutomationController, LoopTiming

__all__ = [
    "ActuationPort",
    "CaptureError",
    "CapturePort",
    "CaptureResult",
    "CaptureSuccess",
    "PerceptionPort",
    "Team",
    "AutomationStats",
    "AutomationStatus",
    "ActionExecutor",
    "AutomationController",
    "LoopTiming",
    "MAX_CONSECUTIVE_ERRORS",
]
