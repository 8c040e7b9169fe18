# logger + formato JSON por línea (ts, level, event, campos extra)
from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from moviematch.api.settings import Settings, _env_bool, _env_str

_HANDLER_TAG = "_moviematch_handler"
_LOGGER_FILE_PATH_SENTINEL: object = object()
_LOGGER_FILE_PATH_CACHED: Path | None | object = _LOGGER_FILE_PATH_SENTINEL

PACKAGE_DIR = Path(__file__).resolve().parents[1]

# Atributos estándar de LogRecord: todo lo demás viene de `extra=`
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("x", logging.INFO, "x", 0, "x", None, None)).keys()
) | {"message", "asctime"}


class JsonLineFormatter(logging.Formatter):
    """
    Una línea JSON por evento:
      {"ts": ..., "level": ..., "logger": ..., "event": <msg>, **extra}

    Los campos que no son serializables se convierten con `str()`.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _sanitize_filename_component(value: str) -> str:
    s = (value or "").strip()
    if not s:
        return ""
    out = []
    for ch in s:
        if ch.isalnum() or ch in ("-", "_", "."):
            out.append(ch)
        else:
            out.append("_")
    return "".join(out).strip("._-")


def _resolve_dir(raw: str, *, base: Path) -> Path:
    p = Path(raw)
    return p if p.is_absolute() else (base / p)


def _build_logger_file_path() -> Path | None:
    global _LOGGER_FILE_PATH_CACHED

    if _LOGGER_FILE_PATH_CACHED is not _LOGGER_FILE_PATH_SENTINEL:
        return None if _LOGGER_FILE_PATH_CACHED is None else _LOGGER_FILE_PATH_CACHED  # type: ignore[return-value]

    if not _env_bool("LOGGER_FILE_ENABLED", False):
        _LOGGER_FILE_PATH_CACHED = None
        return None

    raw_path = _env_str("LOGGER_FILE_PATH", "").strip()
    if raw_path:
        p = Path(raw_path)
        resolved = p if p.is_absolute() else (PACKAGE_DIR / p)
        _LOGGER_FILE_PATH_CACHED = resolved.resolve()
        return _LOGGER_FILE_PATH_CACHED

    log_dir = _resolve_dir(_env_str("LOGGER_FILE_DIR", "logs"), base=PACKAGE_DIR)
    prefix = _sanitize_filename_component(_env_str("LOGGER_FILE_PREFIX", "api")) or "api"
    ts_fmt = _env_str("LOGGER_FILE_TIMESTAMP_FORMAT", "%Y-%m-%d_%H-%M-%S")
    pid_part = f"_{os.getpid()}" if _env_bool("LOGGER_FILE_INCLUDE_PID", True) else ""

    filename = f"{prefix}_{datetime.now().strftime(ts_fmt)}{pid_part}.log"
    _LOGGER_FILE_PATH_CACHED = (log_dir / filename).resolve()
    return _LOGGER_FILE_PATH_CACHED


def _our_handlers(root: logging.Logger, kind: str) -> list[logging.Handler]:
    return [h for h in root.handlers if getattr(h, _HANDLER_TAG, None) == kind]


def _ensure_console_handler(root: logging.Logger, *, level: str) -> None:
    ours = _our_handlers(root, "console")
    if ours:
        for handler in ours:
            handler.setLevel(level)
        return
    # Si uvicorn/gunicorn/pytest ya configuró handlers, respetamos los suyos
    if root.handlers:
        return

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(JsonLineFormatter())
    setattr(handler, _HANDLER_TAG, "console")
    root.addHandler(handler)


def _ensure_file_handler(root: logging.Logger, *, level: str) -> None:
    path = _build_logger_file_path()
    if path is None:
        return

    existing = _our_handlers(root, "file")
    if existing:
        for handler in existing:
            handler.setLevel(level)
        return

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8", delay=True)
    except OSError:
        # El fichero es opcional: seguimos solo con consola
        return
    handler.setLevel(level)
    handler.setFormatter(JsonLineFormatter())
    setattr(handler, _HANDLER_TAG, "file")
    root.addHandler(handler)


def configure_logging(settings: Settings) -> logging.Logger:
    """
    Configuración idempotente:
    - nivel global según LOG_LEVEL.
    - handler de consola JSON solo si nadie más configuró el root logger.
    - handler de fichero opcional (LOGGER_FILE_*).
    """
    root = logging.getLogger()
    root.setLevel(settings.log_level)
    _ensure_console_handler(root, level=settings.log_level)
    _ensure_file_handler(root, level=settings.log_level)

    logger = logging.getLogger("moviematch_api")
    logger.setLevel(settings.log_level)
    return logger
