"""全局日志配置。

使用方式::

    # 应用启动时调用一次
    from fgobot.infra.logger import setup_logger
    setup_logger(log_dir=Path("log/2026-01-01"))

    # 各模块直接使用 loguru
    from loguru import logger
    logger.info("[自动化] 第 {} 场战斗结束", count)

    # 保存出错时的画面到日志目录
    from fgobot.infra.logger import save_image
    save_image(frame, tag="error_state")
"""

from __future__ import annotations

import sys
import time as _time
from pathlib import Path

import cv2
import numpy as np
from loguru import logger

# 全局图片存储目录（由 setup_logger 设置）
_image_dir: Path | None = None

# 项目根目录，用于将绝对路径转换为相对路径
_PROJECT_ROOT = Path(__file__).parent.parent

_FMT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level:8}</level> | "
    "<cyan>{extra[src]}</cyan> | "
    "{message}"
)


def _src_patcher(record: dict) -> None:
    """将 record["file"].path 转为相对路径，存入 extra["src"]。

    格式示例：``automation/controller.py:212``
    """
    try:
        rel = Path(record["file"].path).relative_to(_PROJECT_ROOT)
        record["extra"]["src"] = f"{rel.as_posix()}:{record['line']}"
    except ValueError:
        record["extra"]["src"] = f"{record['file'].name}:{record['line']}"


def setup_logger(
    log_dir: Path | None = None,
    level: str = "INFO",
    rotation: str = "10 MB",
    retention: str = "7 days",
    save_images: bool = False,
) -> None:
    """配置全局 loguru logger。

    日志策略：
    - 控制台：按 *level* 过滤输出。
    - 文件（全量）：始终以 DEBUG 级别记录，文件名含 ``.debug`` 后缀。
    - 文件（过滤）：与控制台 *level* 一致。

    Parameters
    ----------
    log_dir:
        日志文件存放目录。为 *None* 时仅输出到控制台。
    level:
        控制台及过滤文件的最低日志级别。
    rotation:
        单个日志文件最大体积或时间周期。
    retention:
        日志文件保留时长。
    save_images:
        是否开启画面自动保存（保存至 log_dir/images/）。
    """
    global _image_dir

    logger.remove()
    logger.configure(patcher=_src_patcher)
    logger.add(sys.stderr, level=level, format=_FMT)

    if log_dir is None:
        _image_dir = None
        return

    log_dir.mkdir(parents=True, exist_ok=True)

    # 全量文件：固定 DEBUG 级别
    logger.add(
        log_dir / "fgobot_{time:YYYY-MM-DD}.debug.log",
        level="DEBUG",
        rotation=rotation,
        retention=retention,
        encoding="utf-8",
        format=_FMT,
    )

    if level.upper() != "DEBUG":
        logger.add(
            log_dir / "fgobot_{time:YYYY-MM-DD}.log",
            level=level,
            rotation=rotation,
            retention=retention,
            encoding="utf-8",
            format=_FMT,
        )

    if save_images:
        _image_dir = log_dir / "images"
        _image_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("画面存储目录: {}", _image_dir)
    else:
        _image_dir = None


def save_image(
    image: np.ndarray,
    tag: str = "frame",
    img_dir: Path | None = None,
) -> Path | None:
    """将 RGB ndarray 画面保存为 PNG。

    Parameters
    ----------
    image:
        RGB uint8 数组 (H×W×3)。
    tag:
        文件名前缀（不含扩展名）。
    img_dir:
        目标目录。为 *None* 时使用 :func:`setup_logger` 中设定的全局目录；
        全局目录也为 None 则直接返回 None（不保存）。

    Returns
    -------
    Path | None
        保存的文件路径，未保存时返回 None。
    """
    target_dir = img_dir or _image_dir
    if target_dir is None:
        return None

    target_dir.mkdir(parents=True, exist_ok=True)
    ts = _time.strftime("%H%M%S") + f"_{int(_time.monotonic() * 1000) % 1000:03d}"
    path = target_dir / f"{tag}_{ts}.png"

    # cv2 期望 BGR 排列
    bgr = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
    ok, buf = cv2.imencode(".png", bgr)
    if not ok:
        logger.warning("画面保存失败: {}", path)
        return None
    path.write_bytes(buf.tobytes())
    logger.debug("画面已保存: {}", path)
    return path
