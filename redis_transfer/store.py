"""
存储能力接口

迁移引擎只通过这组窄接口访问源和目标实例：
PING、完整键枚举、PTTL、DUMP 和 RESTORE。
RedisStore 把 redis-py 客户端适配到这组接口上。
"""

import redis
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from .exceptions import ConnectionError, StoreError, KeyConflictError
from .utils import sanitize_key_for_logging

logger = logging.getLogger(__name__)

# PTTL 对不存在的键返回 -2，对没有过期时间的键返回 -1
PTTL_KEY_MISSING = -2
NO_EXPIRY = 0


class StoreCapability(ABC):
    """单个存储实例提供给迁移引擎的能力。"""

    name: str = "store"

    @abstractmethod
    def ping(self) -> None:
        """健康检查，失败时抛出 ConnectionError。"""

    @abstractmethod
    def list_keys(self) -> List[bytes]:
        """返回当前键空间的全部键，失败时抛出 StoreError。"""

    @abstractmethod
    def remaining_ttl(self, key: bytes) -> Optional[int]:
        """返回剩余TTL（毫秒），0 表示永不过期，键不存在时返回 None。"""

    @abstractmethod
    def dump(self, key: bytes) -> Optional[bytes]:
        """返回键的序列化值，键不存在时返回 None。"""

    @abstractmethod
    def restore(self, key: bytes, ttl: int, value: bytes) -> None:
        """
        在本实例上恢复键。

        抛出:
            KeyConflictError: 键已存在
            StoreError: 其他失败
        """


class RedisStore(StoreCapability):
    """基于 redis-py 客户端的存储能力实现。"""

    def __init__(self, client: redis.Redis, name: str = "redis", scan_count: int = 1000):
        """
        参数:
            client: 以 decode_responses=False 创建的Redis客户端
            name: 用于日志的实例名称
            scan_count: 枚举键时SCAN命令的COUNT参数
        """
        self.client = client
        self.name = name
        self.scan_count = scan_count

    def ping(self) -> None:
        try:
            self.client.ping()
        except redis.exceptions.RedisError as e:
            raise ConnectionError(f"{self.name} 连接失败: {e}") from e

    def list_keys(self) -> List[bytes]:
        try:
            # SCAN在rehash期间可能重复返回同一个键，去重并保持顺序
            keys = list(dict.fromkeys(self.client.scan_iter(count=self.scan_count)))
        except redis.exceptions.RedisError as e:
            raise StoreError(f"{self.name} SCAN 失败: {e}") from e

        logger.debug(f"{self.name} 枚举到 {len(keys)} 个键")
        return keys

    def remaining_ttl(self, key: bytes) -> Optional[int]:
        try:
            ttl = self.client.pttl(key)
        except redis.exceptions.RedisError as e:
            raise StoreError(f"{self.name} PTTL {sanitize_key_for_logging(key)} 失败: {e}") from e

        if ttl == PTTL_KEY_MISSING:
            return None
        if ttl <= 0:
            return NO_EXPIRY
        return ttl

    def dump(self, key: bytes) -> Optional[bytes]:
        try:
            return self.client.dump(key)
        except redis.exceptions.RedisError as e:
            raise StoreError(f"{self.name} DUMP {sanitize_key_for_logging(key)} 失败: {e}") from e

    def restore(self, key: bytes, ttl: int, value: bytes) -> None:
        try:
            self.client.restore(key, max(ttl, NO_EXPIRY), value)
        except redis.exceptions.ResponseError as e:
            if "BUSYKEY" in str(e):
                raise KeyConflictError(key, str(e)) from e
            raise StoreError(f"{self.name} RESTORE {sanitize_key_for_logging(key)} 失败: {e}") from e
        except redis.exceptions.RedisError as e:
            raise StoreError(f"{self.name} RESTORE {sanitize_key_for_logging(key)} 失败: {e}") from e
