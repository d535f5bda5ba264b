"""
Redis Transfer - 逐键复制Redis实例的工具

通过 PTTL/DUMP/RESTORE 把源实例的全部键连同剩余TTL复制到目标实例，
支持快照文件输出和按偏移量续传。
"""

__version__ = "1.0.0"
__author__ = "Redis Transfer Tool"

from .connection_manager import RedisConnectionManager
from .engine import TransferEngine, TransferRecord, TransferResult, MigrationState
from .snapshot import SnapshotWriter
from .store import StoreCapability, RedisStore
from .utils import RetryPolicy

__all__ = [
    "RedisConnectionManager",
    "TransferEngine",
    "TransferRecord",
    "TransferResult",
    "MigrationState",
    "SnapshotWriter",
    "StoreCapability",
    "RedisStore",
    "RetryPolicy",
]
