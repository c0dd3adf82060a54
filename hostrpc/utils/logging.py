"""File sinks for loguru.

The library itself only calls ``logger``; hosts decide where records go. Each
named component gets at most one rotating file sink.
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from hostrpc.config.schema import LoggingConfig

_SINK_IDS: dict[str, int] = {}


def get_log_dir() -> Path:
    return Path.home() / ".hostrpc" / "logs"


def ensure_rotating_log_file(
    name: str,
    level: str = "INFO",
    log_dir: Path | None = None,
    *,
    rotation: str = "10 MB",
    retention: str = "14 days",
) -> Path:
    """Add a rotating sink ``<log_dir>/<name>.log`` unless ``name`` already has one."""
    target = (log_dir or get_log_dir()) / f"{name}.log"
    if name not in _SINK_IDS:
        target.parent.mkdir(parents=True, exist_ok=True)
        # diagnose=False keeps local variable values (access keys) out of the file
        _SINK_IDS[name] = logger.add(
            str(target),
            level=level,
            rotation=rotation,
            retention=retention,
            encoding="utf-8",
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )
    return target


def configure_logging(config: LoggingConfig) -> Path | None:
    if not config.file:
        return None
    path = Path(config.file).expanduser()
    return ensure_rotating_log_file(
        path.stem,
        level=config.level,
        log_dir=path.parent,
        rotation=config.rotation,
        retention=config.retention,
    )


def remove_log_sinks() -> None:
    while _SINK_IDS:
        _, sink_id = _SINK_IDS.popitem()
        logger.remove(sink_id)
