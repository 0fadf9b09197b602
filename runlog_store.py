"""
runlog_store
------------
레지스트리가 사용하는 키-값 저장소 포트와 구현체.

- MemoryStore: 테스트/세션용. 저장 시 JSON 직렬화를 거쳐 실제 저장 형태와 동일하게 유지
- JsonFileStore: 두 키(runningLogs, runningPlans)를 하나의 JSON 문서에 저장
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_DATA_PATH = "runlog_data.json"
DATA_PATH_ENV = "RUNLOG_DATA_PATH"


class StoreError(RuntimeError):
    """저장소를 읽거나 쓸 수 없을 때 발생한다. 코어는 재시도하지 않는다."""


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


@dataclass
class StoreConfig:
    path: str = DEFAULT_DATA_PATH

    @classmethod
    def from_env(cls) -> "StoreConfig":
        override = os.environ.get(DATA_PATH_ENV, "").strip()
        return cls(path=override or DEFAULT_DATA_PATH)


class MemoryStore:
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value, ensure_ascii=False)

    def raw(self, key: str) -> Optional[str]:
        return self._data.get(key)


class JsonFileStore:
    def __init__(self, path: os.PathLike | str):
        self.path = Path(path).expanduser()
        self._data = self._load()

    @classmethod
    def from_config(cls, config: StoreConfig) -> "JsonFileStore":
        return cls(config.path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            logger.debug("Store file %s not found; starting empty", self.path)
            return {}
        try:
            raw = self.path.read_text(encoding="utf-8").strip() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Could not read store file %s: %s", self.path, exc)
            raise StoreError(f"Could not read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"{self.path} must contain a JSON object")
        logger.debug("Loaded store file %s (keys=%s)", self.path, sorted(data))
        return data

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        # 호출자가 내부 상태를 직접 바꾸지 못하도록 복사본을 돌려준다.
        return json.loads(json.dumps(self._data[key]))

    def set(self, key: str, value: Any) -> None:
        updated = dict(self._data)
        updated[key] = value
        payload = json.dumps(updated, ensure_ascii=False, indent=2, sort_keys=True) + "\n"
        temp_path: Optional[Path] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with NamedTemporaryFile("w", dir=self.path.parent, delete=False, encoding="utf-8") as tmp:
                temp_path = Path(tmp.name)
                tmp.write(payload)
            temp_path.replace(self.path)
        except OSError as exc:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            logger.error("Could not write store file %s: %s", self.path, exc)
            raise StoreError(f"Could not write {self.path}: {exc}") from exc
        self._data = json.loads(payload)
        logger.debug("Saved %s to %s", key, self.path)
