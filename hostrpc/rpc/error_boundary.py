"""Error boundary between a running endpoint and the wire."""

from __future__ import annotations

import asyncio

from loguru import logger

from hostrpc.rpc.outcome import Defect, Empty, Failure, Outcome, sanitize_defect
from hostrpc.rpc.shapes import ErrorShape
from hostrpc.utils.exceptions import PayloadDecodeError, classify_exception


def outcome_from_exception(
    exc: BaseException,
    *,
    tag: str,
    kind: str,
    error: ErrorShape,
    redact: bool = True,
) -> Outcome:
    """Map an exception escaping the composed computation to an Outcome.

    Declared typed errors become ``Failure``; cancellation becomes ``Empty``;
    everything else, including undeclared typed errors and payload decode
    errors, becomes a sanitized ``Defect``.
    """
    if isinstance(exc, asyncio.CancelledError):
        logger.warning("RPC {} {} interrupted", kind, tag)
        return Empty()
    if error.matches(exc):
        logger.info("RPC {} {} failed with {}", kind, tag, exc._tag)
        return Failure(exc)
    defect = sanitize_defect(exc, redact=redact)
    if isinstance(exc, PayloadDecodeError):
        logger.warning("RPC {} {} rejected payload: {}", kind, tag, defect["message"])
        return Defect(defect)
    code, category, _ = classify_exception(exc)
    logger.opt(exception=exc).error(
        "RPC {} {} died with [{}/{}]: {}", kind, tag, code, category.value, defect.get("message", defect["_tag"])
    )
    return Defect(defect)
