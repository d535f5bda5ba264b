"""
Redis Transfer工具的实用函数。

提供有界重试策略、进度统计和格式化工具。
"""

import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Type, Tuple

from .exceptions import StoreError, RetryExhaustedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    单个存储操作的有界重试策略。

    每次失败都会让计数加一，最多执行 ``max_retries + 1`` 次尝试。
    第 n 次重试前等待 ``min(delay * backoff_factor ** (n - 1), max_delay)`` 秒，
    delay 为 0 时立即重试。
    """
    max_retries: int = 3
    delay: float = 0.0
    backoff_factor: float = 2.0
    max_delay: float = 60.0
    retry_on: Tuple[Type[Exception], ...] = (StoreError,)

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0, got {self.delay}")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_number: int) -> float:
        """计算第 retry_number 次重试前的等待时间（从1开始）。"""
        if self.delay <= 0:
            return 0.0
        return min(self.delay * (self.backoff_factor ** (retry_number - 1)), self.max_delay)

    def call(self,
             operation: Callable[..., Any],
             *args,
             description: str = "operation",
             on_retry: Optional[Callable[[int, Exception], None]] = None,
             sleep: Callable[[float], None] = time.sleep,
             **kwargs) -> Any:
        """
        在重试策略下执行 operation。

        参数:
            operation: 要执行的操作
            description: 用于日志和错误信息的操作描述
            on_retry: 每次重试前调用，参数为(重试序号, 异常)
            sleep: 等待函数（测试时可替换）

        返回:
            operation 的返回值

        抛出:
            RetryExhaustedError: 所有尝试均失败
        """
        last_error = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation(*args, **kwargs)
            except self.retry_on as e:
                last_error = e

                if attempt == self.max_attempts:
                    logger.error(f"{description} 失败，已达最大重试次数 ({self.max_retries}): {e}")
                    break

                logger.warning(f"{description} 失败 (第 {attempt}/{self.max_attempts} 次): {e}")

                if on_retry:
                    on_retry(attempt, e)

                wait = self.delay_for(attempt)
                if wait > 0:
                    sleep(wait)

        raise RetryExhaustedError(
            f"{description} failed after {self.max_attempts} attempts: {last_error}",
            attempts=self.max_attempts
        ) from last_error


def format_bytes(bytes_value: int) -> str:
    """
    Format bytes value in human-readable format.

    Args:
        bytes_value: Number of bytes

    Returns:
        Formatted string (e.g., "1.5 MB")
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_value < 1024.0:
            return f"{bytes_value:.1f} {unit}"
        bytes_value /= 1024.0
    return f"{bytes_value:.1f} PB"


def format_duration(seconds: float) -> str:
    """
    格式化持续时间为可读格式。

    参数:
        seconds: 持续时间（秒）

    返回:
        格式化的字符串（例如："1小时30分45秒"）
    """
    if seconds < 60:
        return f"{seconds:.1f}秒"

    minutes = int(seconds // 60)
    seconds = seconds % 60

    if minutes < 60:
        return f"{minutes}分{seconds:.1f}秒"

    hours = minutes // 60
    minutes = minutes % 60

    if hours < 24:
        return f"{hours}小时{minutes}分{seconds:.0f}秒"

    days = hours // 24
    hours = hours % 24

    return f"{days}天{hours}小时{minutes}分"


def sanitize_key_for_logging(key, max_length: int = 100) -> str:
    """
    Sanitize Redis key for safe logging.

    Args:
        key: Redis key (bytes or str)
        max_length: Maximum length for logged key

    Returns:
        Sanitized key string
    """
    if not key:
        return "<empty>"

    if isinstance(key, bytes):
        key = key.decode('utf-8', errors='backslashreplace')

    # Replace non-printable characters
    sanitized = ''.join(c if c.isprintable() else f'\\x{ord(c):02x}' for c in key)

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length - 3] + "..."

    return sanitized


def calculate_progress_rate(current: int, total: int, elapsed_time: float) -> tuple:
    """
    Calculate progress rate and estimated time remaining.

    Returns:
        Tuple of (rate_per_second, eta_seconds)
    """
    if elapsed_time <= 0 or current <= 0:
        return 0.0, None

    rate = current / elapsed_time
    remaining = total - current

    if rate <= 0:
        return rate, None

    return rate, remaining / rate


class ProgressTracker:
    """Track progress of long-running operations."""

    def __init__(self, total: int, operation_name: str = "Operation", clock: Callable[[], float] = time.time):
        self.total = total
        self.current = 0
        self.operation_name = operation_name
        self._clock = clock
        self.start_time = clock()
        self.last_log = self.start_time

    def update(self, current: int):
        """Set absolute progress."""
        self.current = current

    def get_stats(self) -> dict:
        """Get current progress statistics."""
        elapsed = self._clock() - self.start_time
        rate, eta = calculate_progress_rate(self.current, self.total, elapsed)

        return {
            'current': self.current,
            'total': self.total,
            'percentage': (self.current / max(self.total, 1)) * 100,
            'elapsed_time': elapsed,
            'rate_per_second': rate,
            'eta_seconds': eta,
            'eta_formatted': format_duration(eta) if eta else None
        }

    def log_progress(self, log_interval: float = 10.0) -> bool:
        """Log progress if enough time has passed. Returns True when a line was logged."""
        now = self._clock()
        if now - self.last_log < log_interval:
            return False

        stats = self.get_stats()
        logger.info(f"{self.operation_name}: {stats['current']}/{stats['total']} "
                    f"({stats['percentage']:.1f}%) - "
                    f"Rate: {stats['rate_per_second']:.1f}/s - "
                    f"ETA: {stats['eta_formatted'] or 'Unknown'}")
        self.last_log = now
        return True
