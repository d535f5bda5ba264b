"""
键迁移引擎

逐键把源实例的键空间复制到目标实例：
枚举全部键 -> PTTL -> DUMP -> （可选）写入快照 -> RESTORE。
TTL和DUMP步骤使用有界重试；键在枚举后被删除视为正常跳过，
目标已存在同名键时保留目标数据并继续；其余错误立即中止迁移。
"""

import time
import logging
from dataclasses import dataclass, asdict
from typing import Optional, Callable, Dict, Any

from .exceptions import (
    StoreError,
    KeyConflictError,
    EnumerationError,
    RetryExhaustedError,
    RestoreError,
)
from .progress import ProgressCallback
from .snapshot import SnapshotWriter
from .store import StoreCapability
from .utils import RetryPolicy, format_bytes, format_duration, sanitize_key_for_logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferRecord:
    """一个键的迁移单元：键、TTL（毫秒，0为永不过期）和DUMP序列化值。"""
    key: bytes
    ttl: int
    value: bytes


@dataclass
class MigrationState:
    """迁移进度状态。current_index 为已处理（含跳过）的键数。"""
    resume_offset: int = 0
    total_keys: int = 0
    current_index: int = 0


@dataclass
class TransferResult:
    """一次迁移运行的统计结果。"""
    total_keys: int = 0
    skipped_keys: int = 0
    copied_keys: int = 0
    conflict_keys: int = 0
    vanished_keys: int = 0
    total_bytes: int = 0
    retries: int = 0
    duration: float = 0.0
    resume_offset: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TransferEngine:
    """编排单次源到目标的全量键迁移。"""

    def __init__(self,
                 source: StoreCapability,
                 destination: StoreCapability,
                 snapshot: Optional[SnapshotWriter] = None,
                 progress_callback: Optional[ProgressCallback] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        初始化迁移引擎。

        参数:
            source: 源存储
            destination: 目标存储
            snapshot: 快照写入器，None表示不写快照
            progress_callback: 每个键恢复成功后调用 (index, total, key)
            retry_policy: TTL和DUMP步骤共用的重试策略
            sleep: 重试等待函数
        """
        self.source = source
        self.destination = destination
        self.snapshot = snapshot
        self.progress_callback = progress_callback
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self.state = MigrationState()
        self.result = TransferResult()

    def run(self, resume_offset: int = 0) -> TransferResult:
        """
        执行迁移。

        参数:
            resume_offset: 跳过枚举结果中的前N个键

        返回:
            迁移统计

        抛出:
            MigrationError: 任何致命错误，异常的 result 属性携带中止时的统计
        """
        if resume_offset < 0:
            raise ValueError(f"resume_offset must be >= 0, got {resume_offset}")

        start_time = time.time()
        self.state = MigrationState(resume_offset=resume_offset)
        self.result = TransferResult(resume_offset=resume_offset)

        try:
            keys = self._enumerate_keys()

            for index, key in enumerate(keys):
                if index < resume_offset:
                    self.result.skipped_keys += 1
                else:
                    self._transfer_key(index, key)
                self.state.current_index = index + 1
        finally:
            self.result.duration = time.time() - start_time
            self.result.resume_offset = self.state.current_index

        logger.info(
            f"COPIED ALL KEYS: 复制 {self.result.copied_keys}，冲突 {self.result.conflict_keys}，"
            f"已删除 {self.result.vanished_keys}，跳过 {self.result.skipped_keys}，"
            f"数据量 {format_bytes(self.result.total_bytes)}，耗时 {format_duration(self.result.duration)}"
        )
        return self.result

    def _enumerate_keys(self):
        try:
            keys = self.source.list_keys()
        except StoreError as e:
            logger.error(f"获取键列表失败: {e}")
            raise EnumerationError(f"Error getting keys: {e}", result=self.result) from e

        self.state.total_keys = len(keys)
        self.result.total_keys = len(keys)
        logger.info(f"GOT ALL KEYS: {len(keys)}")

        if self.state.resume_offset:
            logger.info(f"跳过前 {min(self.state.resume_offset, len(keys))} 个键")
        return keys

    def _transfer_key(self, index: int, key: bytes):
        """迁移单个键。致命错误直接抛出。"""
        printable_key = sanitize_key_for_logging(key)

        ttl = self._with_retry(self.source.remaining_ttl, key, f"Error getting TTL: {printable_key}")
        if ttl is None:
            logger.warning(f"键已不存在，跳过: {printable_key}")
            self.result.vanished_keys += 1
            return

        value = self._with_retry(self.source.dump, key, f"Error dumping key: {printable_key}")
        if value is None:
            logger.warning(f"键已不存在，跳过: {printable_key}")
            self.result.vanished_keys += 1
            return

        record = TransferRecord(key=key, ttl=ttl, value=value)
        if self.snapshot is not None:
            self.snapshot.append(record)

        try:
            self.destination.restore(record.key, record.ttl, record.value)
        except KeyConflictError:
            logger.warning(f"Key already exists: {printable_key}")
            self.result.conflict_keys += 1
            return
        except StoreError as e:
            logger.error(f"Error restoring key: {printable_key}: {e}")
            raise RestoreError(
                f"Error restoring key {printable_key}: {e}", key=key, result=self.result
            ) from e

        self.result.copied_keys += 1
        self.result.total_bytes += len(value)

        if self.progress_callback:
            self.progress_callback(index + 1, self.state.total_keys, key)

    def _with_retry(self, operation, key: bytes, description: str):
        try:
            return self.retry_policy.call(
                operation, key,
                description=description,
                on_retry=self._on_retry,
                sleep=self._sleep
            )
        except RetryExhaustedError as e:
            e.key = key
            e.result = self.result
            raise

    def _on_retry(self, attempt: int, error: Exception):
        self.result.retries += 1
