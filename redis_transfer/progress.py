"""
进度报告器

迁移引擎在每个键成功恢复后调用 reporter(index, total, key)。
"""

import logging
from typing import Callable, Optional

from tqdm import tqdm

from .utils import ProgressTracker, sanitize_key_for_logging

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, bytes], None]


class LoggingProgressReporter:
    """每复制一个键输出一行日志，并定期输出速率。"""

    def __init__(self, log_interval: float = 10.0):
        self.log_interval = log_interval
        self._tracker: Optional[ProgressTracker] = None

    def __call__(self, index: int, total: int, key: bytes):
        if self._tracker is None:
            self._tracker = ProgressTracker(total, "键复制")

        logger.info(f"COPIED KEY {index}/{total} {sanitize_key_for_logging(key)}")
        self._tracker.update(index)
        self._tracker.log_progress(self.log_interval)

    def close(self):
        self._tracker = None


class TqdmProgressReporter:
    """使用 tqdm 进度条显示复制进度。"""

    def __init__(self, desc: str = "Copying keys"):
        self.desc = desc
        self._pbar: Optional[tqdm] = None

    def __call__(self, index: int, total: int, key: bytes):
        if self._pbar is None:
            self._pbar = tqdm(total=total, desc=self.desc, unit="keys")
        self._pbar.update(index - self._pbar.n)
        self._pbar.set_postfix_str(sanitize_key_for_logging(key, max_length=40), refresh=False)

    def close(self):
        if self._pbar is not None:
            self._pbar.close()
            self._pbar = None
