from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any

from slidegen.config import settings


logger = logging.getLogger("slidegen.pipeline")


@dataclass(frozen=True)
class CallAttempt:
    step_name: str
    attempt: int
    model: str
    provider: str

    def label(self) -> str:
        return f"{self.step_name}#{self.attempt}@{self.provider}/{self.model}"


def preview_text(text: Any, limit: int | None = None) -> str:
    raw = str(text or "").replace("\r", " ").replace("\n", " ").strip()
    if not raw:
        return ""
    cap = int(limit or settings.log_preview_chars)
    if len(raw) <= cap:
        return raw
    return raw[:cap].rstrip() + " ..."


def safe_json(value: Any) -> str:
    try:
        return json.dumps(value if value is not None else {}, ensure_ascii=False, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return "{}"


def sha1_json(value: Any) -> str:
    return hashlib.sha1(safe_json(value).encode("utf-8")).hexdigest()


def log_step(
    message: str,
    *,
    request_id: str | None = None,
    level: int = logging.INFO,
    target: logging.Logger | None = None,
    **fields: Any,
) -> None:
    """Emit ``request=<id> <message> | key=value ...`` on the pipeline logger."""
    log = target or logger
    if not settings.verbose_ai_trace and level < logging.WARNING:
        return
    details = " ".join(
        f"{key}={json.dumps(value, ensure_ascii=False, default=str)}"
        for key, value in fields.items()
        if value is not None
    )
    if details:
        log.log(level, "request=%s %s | %s", request_id or "n/a", message, details)
    else:
        log.log(level, "request=%s %s", request_id or "n/a", message)


def configure_runtime_logging() -> None:
    level = getattr(logging, str(settings.log_level).upper(), logging.INFO)
    for name in ("slidegen", "slidegen.pipeline", "slidegen.providers", "slidegen.batch", "slidegen.analysis"):
        logging.getLogger(name).setLevel(level)

    if settings.suppress_httpx_info_logs:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("openai").setLevel(logging.WARNING)
        logging.getLogger("anthropic").setLevel(logging.WARNING)
