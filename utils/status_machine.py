import logging
from typing import Optional

from schemas.job_contract import (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_RUNNING,
    TERMINAL_STATUSES,
)

logger = logging.getLogger("extractor.status_machine")

_TERMINAL = set(TERMINAL_STATUSES)

# Jobs only ever leave "running"; terminal states never resume.
_ALLOWED = {
    None: {JOB_STATUS_RUNNING, JOB_STATUS_COMPLETED, JOB_STATUS_FAILED},
    JOB_STATUS_RUNNING: {JOB_STATUS_RUNNING, JOB_STATUS_COMPLETED, JOB_STATUS_FAILED},
    JOB_STATUS_COMPLETED: {JOB_STATUS_COMPLETED},
    JOB_STATUS_FAILED: {JOB_STATUS_FAILED},
}


def _norm(status: Optional[str]) -> Optional[str]:
    if status is None:
        return None
    s = str(status).strip().lower()
    return s or None


def is_terminal(status: Optional[str]) -> bool:
    return _norm(status) in _TERMINAL


def is_allowed_transition(current: Optional[str], target: Optional[str]) -> bool:
    target_n = _norm(target)
    if not target_n:
        return True
    current_n = _norm(current)
    allowed = _ALLOWED.get(current_n, _ALLOWED[None])
    return target_n in allowed


def check_transition(*, job_id: str, current: Optional[str], target: Optional[str], context: str) -> bool:
    if is_allowed_transition(current, target):
        return True
    logger.warning(
        "status_transition_blocked context=%s job_id=%s current=%s target=%s",
        context,
        job_id,
        _norm(current),
        _norm(target),
    )
    return False
