"""
Redis Transfer工具的自定义异常。

区分可重试的存储错误、良性的键冲突以及会中止整个迁移的致命错误。
"""


class RedisTransferError(Exception):
    """Redis Transfer工具的基础异常。"""
    pass


class ConfigurationError(RedisTransferError):
    """配置无效时抛出。"""
    pass


class ConnectionError(RedisTransferError):
    """Redis实例无法连接或健康检查失败时抛出。"""
    pass


class StoreError(RedisTransferError):
    """单次存储操作失败时抛出（可重试）。"""
    pass


class KeyConflictError(RedisTransferError):
    """目标实例已存在同名键时抛出（BUSYKEY）。"""

    def __init__(self, key: bytes, message: str = "BUSYKEY Target key name already exists"):
        super().__init__(message)
        self.key = key


class MigrationError(RedisTransferError):
    """迁移被中止时抛出。

    ``result`` 保存中止前已累计的统计信息，便于通过 ``--skip`` 续传。
    """

    def __init__(self, message: str, key: bytes = None, result=None):
        super().__init__(message)
        self.key = key
        self.result = result


class EnumerationError(MigrationError):
    """无法列出源实例的键空间时抛出。"""
    pass


class RetryExhaustedError(MigrationError):
    """可重试步骤用完重试次数时抛出。"""

    def __init__(self, message: str, attempts: int, key: bytes = None, result=None):
        super().__init__(message, key=key, result=result)
        self.attempts = attempts


class RestoreError(MigrationError):
    """目标实例RESTORE失败且不是键冲突时抛出。"""
    pass
