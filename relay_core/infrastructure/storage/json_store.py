import json
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from relay_core.config.settings import settings
from relay_core.domain.chat import LLMResultRecord, ResultRepository
from relay_core.domain.exceptions import BusinessError

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class JsonResultStore(ResultRepository):
    """按会话存储 LLM 结果：<root>/results/<session_id>.jsonl，每行一条记录。"""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._results_root = self._root / "results"
        self._results_root.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.Lock()

    def save_result(self, record: LLMResultRecord) -> None:
        path = self._session_path(record.session_id)
        payload = {
            "id": record.id,
            "session_id": record.session_id,
            "chat_id": record.chat_id,
            "user_id": record.user_id,
            "message_id": record.message_id,
            "provider": record.provider,
            "model": record.model,
            "prompt": record.prompt,
            "response": record.response,
            "error": record.error,
            "processing_time_ms": record.processing_time_ms,
            "created_at": record.created_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            "chat_title": record.chat_title,
        }
        line = json.dumps(payload, ensure_ascii=False)
        try:
            with self._write_lock, path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    def list_results(
        self, session_id: str, chat_id: Optional[str] = None, limit: int = 50
    ) -> List[LLMResultRecord]:
        """最新的在前。"""

        items = self._read_session(self._session_path(session_id))
        if chat_id is not None:
            items = [r for r in items if r.chat_id == str(chat_id)]
        items.sort(key=lambda r: r.created_at, reverse=True)
        return items[:limit]

    def latest(self, limit: int = 20) -> List[LLMResultRecord]:
        items: List[LLMResultRecord] = []
        for path in self._results_root.glob("*.jsonl"):
            items.extend(self._read_session(path))
        items.sort(key=lambda r: r.created_at, reverse=True)
        return items[:limit]

    def stats(self, session_id: str) -> Dict[str, Any]:
        items = self._read_session(self._session_path(session_id))
        by_provider: Dict[str, int] = {}
        by_model: Dict[str, int] = {}
        for r in items:
            by_provider[r.provider] = by_provider.get(r.provider, 0) + 1
            by_model[r.model] = by_model.get(r.model, 0) + 1
        avg = sum(r.processing_time_ms for r in items) / len(items) if items else 0
        return {
            "totalProcessed": len(items),
            "byProvider": by_provider,
            "byModel": by_model,
            "avgProcessingTime": round(avg),
        }

    def _session_path(self, session_id: str) -> Path:
        name = _UNSAFE.sub("_", str(session_id)) or "_"
        return self._results_root / f"{name}.jsonl"

    def _read_session(self, path: Path) -> List[LLMResultRecord]:
        items: List[LLMResultRecord] = []
        if not path.exists():
            return items
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        for line in lines:
            try:
                items.append(self._to_record(json.loads(line)))
            except (ValueError, KeyError):
                continue
        return items

    def _to_record(self, data: Dict[str, Any]) -> LLMResultRecord:
        return LLMResultRecord(
            id=data["id"],
            session_id=str(data["session_id"]),
            chat_id=str(data["chat_id"]),
            user_id=str(data.get("user_id") or ""),
            message_id=data.get("message_id"),
            provider=data["provider"],
            model=data["model"],
            prompt=data.get("prompt") or "",
            response=data.get("response"),
            error=data.get("error"),
            processing_time_ms=int(data.get("processing_time_ms", 0)),
            created_at=datetime.fromisoformat(str(data["created_at"]).replace("Z", "+00:00")),
            chat_title=data.get("chat_title"),
        )
