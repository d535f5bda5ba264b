"""
快照写入器

把迁移过程中读取到的每个键以可移植的文本记录追加到文件中，
供外部工具对账使用。每条记录固定三行：

    键名
    TTL（0 表示永不过期，否则为毫秒数 * 1000）
    值的标准base64编码（去掉 '=' 填充）
"""

import base64
import logging
from pathlib import Path
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)


def encode_ttl(ttl: int) -> bytes:
    """TTL字段的字面编码：毫秒数乘以1000，非正值写为0。"""
    if ttl <= 0:
        return b"0"
    return str(ttl * 1000).encode("ascii")


def encode_record(key: bytes, ttl: int, value: bytes) -> bytes:
    """把一条记录编码为三行字节串。"""
    return b"".join((
        key, b"\n",
        encode_ttl(ttl), b"\n",
        base64.b64encode(value).rstrip(b"="), b"\n",
    ))


class SnapshotWriter:
    """只追加的快照写入器，使用 with 语句保证在任何退出路径上刷新并关闭。"""

    def __init__(self, stream: BinaryIO, path: Optional[str] = None, owns_stream: bool = False):
        self._stream = stream
        self.path = path
        self._owns_stream = owns_stream
        self.records_written = 0
        self.closed = False

    @classmethod
    def open(cls, path: str) -> 'SnapshotWriter':
        """创建（或截断）快照文件。"""
        snapshot_dir = Path(path).parent
        snapshot_dir.mkdir(parents=True, exist_ok=True)

        stream = open(path, 'wb')
        logger.info(f"快照文件: {path}")
        return cls(stream, path=path, owns_stream=True)

    def append(self, record) -> None:
        """追加一条 TransferRecord。"""
        if self.closed:
            raise ValueError("snapshot writer is closed")

        self._stream.write(encode_record(record.key, record.ttl, record.value))
        self.records_written += 1

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True

        try:
            self._stream.flush()
        finally:
            if self._owns_stream:
                self._stream.close()
                logger.info(f"快照已写入 {self.records_written} 条记录: {self.path}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
