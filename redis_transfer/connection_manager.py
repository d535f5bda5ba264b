"""
Redis连接管理器

创建并持有源和目标Redis实例的连接，整个迁移期间各保持一条连接。
连接时带指数退避重试，并通过PING做健康检查。
"""

import redis
import logging
import time
from typing import Optional, Dict, Any, Callable

from .config import RedisConfig
from .exceptions import ConnectionError
from .store import RedisStore

logger = logging.getLogger(__name__)


class RedisConnectionManager:
    """管理源和目标Redis实例的连接。"""

    def __init__(self,
                 retry_config: Optional[Dict[str, Any]] = None,
                 client_factory: Callable[..., redis.Redis] = redis.Redis,
                 sleep: Callable[[float], None] = time.sleep):
        self.source_client: Optional[redis.Redis] = None
        self.target_client: Optional[redis.Redis] = None
        self._client_factory = client_factory
        self._sleep = sleep

        self.retry_config = retry_config or {
            'max_attempts': 3,
            'backoff_factor': 2,
            'max_delay': 30,
            'initial_delay': 1
        }

    @staticmethod
    def _create_connection_config(config: RedisConfig) -> Dict[str, Any]:
        """创建Redis连接参数。"""
        params = {
            "host": config.host,
            "port": config.port,
            "username": config.username,
            "password": config.password,
            "db": config.db,
            "decode_responses": False,
            "socket_timeout": config.socket_timeout,
            "socket_connect_timeout": config.socket_connect_timeout,
            "socket_keepalive": True,
        }

        # 移除None值
        return {k: v for k, v in params.items() if v is not None}

    def _connect_with_retry(self, params: Dict[str, Any], name: str) -> redis.Redis:
        """带重试机制的连接（指数退避）"""
        max_attempts = self.retry_config['max_attempts']
        backoff_factor = self.retry_config['backoff_factor']
        max_delay = self.retry_config['max_delay']
        initial_delay = self.retry_config['initial_delay']

        last_error = None

        for attempt in range(1, max_attempts + 1):
            client = self._client_factory(**params)
            try:
                logger.info(f"尝试连接 {name} (第 {attempt}/{max_attempts} 次)")
                client.ping()
                logger.info(f"✅ 成功连接到 {name}")
                return client

            except (redis.exceptions.ConnectionError,
                    redis.exceptions.TimeoutError) as e:
                last_error = e
                client.close()

                if attempt < max_attempts:
                    delay = min(initial_delay * (backoff_factor ** (attempt - 1)), max_delay)
                    logger.warning(
                        f"⚠️  连接 {name} 失败 (第 {attempt}/{max_attempts} 次): {e}"
                        f"\n   {delay:.1f}秒后重试..."
                    )
                    self._sleep(delay)
                else:
                    logger.error(f"❌ 连接 {name} 失败，已达最大重试次数: {e}")

            except redis.exceptions.RedisError as e:
                # 认证失败等错误重试无意义
                last_error = e
                client.close()
                logger.error(f"❌ 连接 {name} 失败: {e}")
                break

        raise ConnectionError(f"{name} connection error: {last_error}")

    def connect_source(self, config: RedisConfig) -> redis.Redis:
        """连接到源Redis实例。"""
        params = self._create_connection_config(config)
        self.source_client = self._connect_with_retry(params, f"源Redis {config.host}:{config.port}/{config.db}")
        return self.source_client

    def connect_target(self, config: RedisConfig) -> redis.Redis:
        """连接到目标Redis实例。"""
        params = self._create_connection_config(config)
        self.target_client = self._connect_with_retry(params, f"目标Redis {config.host}:{config.port}/{config.db}")
        return self.target_client

    def connect(self, source: RedisConfig, target: RedisConfig, scan_count: int = 1000):
        """
        连接源和目标实例并返回对应的存储能力。

        返回:
            (源RedisStore, 目标RedisStore)
        """
        self.connect_source(source)
        self.connect_target(target)
        logger.info("CONNECTED TO SOURCE AND DESTINATION")

        return (
            RedisStore(self.source_client, name=f"source {source.host}:{source.port}", scan_count=scan_count),
            RedisStore(self.target_client, name=f"destination {target.host}:{target.port}"),
        )

    def get_source_info(self) -> Dict[str, Any]:
        """Get source Redis instance information."""
        if not self.source_client:
            raise RuntimeError("Source client not connected")
        return self.source_client.info()

    def get_target_info(self) -> Dict[str, Any]:
        """Get target Redis instance information."""
        if not self.target_client:
            raise RuntimeError("Target client not connected")
        return self.target_client.info()

    def close_connections(self):
        """Close all Redis connections."""
        for name, client in (("源", self.source_client), ("目标", self.target_client)):
            if client is None:
                continue
            try:
                client.close()
                logger.info(f"已关闭{name}Redis连接")
            except redis.exceptions.RedisError as e:
                logger.warning(f"关闭{name}Redis连接失败: {e}")
        self.source_client = None
        self.target_client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_connections()
