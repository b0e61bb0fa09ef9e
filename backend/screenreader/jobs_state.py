"""
Run bookkeeping for the background jobs, reported by the full health check.
A reading cycle that keeps failing shows up as a growing failure count while
the scheduler backs it off.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from screenreader.core.scheduler import get_scheduler

logger = logging.getLogger(__name__)

READING_JOB_ID = "reading_cycle"
SYNC_JOB_ID = "nightscout_sync"
CLEANUP_JOB_ID = "data_cleanup"
JOB_IDS = (READING_JOB_ID, SYNC_JOB_ID, CLEANUP_JOB_ID)


@dataclass
class JobStatus:
    last_run_at: Optional[datetime] = None
    last_ok: Optional[bool] = None
    last_error: Optional[str] = None
    runs: int = 0
    failures: int = 0


_job_states: dict[str, JobStatus] = {job_id: JobStatus() for job_id in JOB_IDS}


def _next_run(job_id: str) -> Optional[datetime]:
    scheduler = get_scheduler()
    job = scheduler.get_job(job_id) if scheduler is not None else None
    return job.next_run_time if job is not None else None


def get_all_states() -> dict[str, dict[str, Any]]:
    states = {}
    for job_id, state in _job_states.items():
        entry = asdict(state)
        entry["next_run_at"] = _next_run(job_id)
        for key in ("last_run_at", "next_run_at"):
            if entry[key] is not None:
                entry[key] = entry[key].astimezone(timezone.utc).isoformat()
        states[job_id] = entry
    return states


async def run_job(job_id: str, func: Callable[[], Awaitable[Any]]) -> Any:
    state = _job_states[job_id]
    state.runs += 1
    state.last_run_at = datetime.now(timezone.utc)
    try:
        result = await func()
    except Exception as e:
        state.failures += 1
        state.last_ok = False
        state.last_error = str(e)
        logger.warning(f"Job '{job_id}' failed ({state.failures} of {state.runs} runs): {e}")
        raise
    state.last_ok = True
    state.last_error = None
    return result
