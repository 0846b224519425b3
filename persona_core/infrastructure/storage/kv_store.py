import os
import re
from pathlib import Path
from typing import Dict, Optional
from uuid import uuid4

from persona_core.config.settings import settings
from persona_core.domain.bots import KeyValueStore
from persona_core.domain.exceptions import BusinessError, StoreReadFailure


_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class JsonFileKeyValueStore(KeyValueStore):
    """每个 key 对应 root 下的一个文件，写入使用临时文件 + os.replace 保证原子性。"""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StoreReadFailure(str(e), key=key)

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = self._root / f"{key}.{uuid4().hex}.tmp"
        try:
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except (OSError, UnicodeEncodeError) as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
        finally:
            # replace 成功后临时文件已不存在；失败时不留下残片
            tmp_path.unlink(missing_ok=True)

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise BusinessError(code="INVALID_STORE_KEY", message=key)
        return self._root / f"{key}.json"


class MemoryKeyValueStore(KeyValueStore):
    """进程内存实现，适合嵌入式使用与测试。"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
