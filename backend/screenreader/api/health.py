from datetime import datetime

from fastapi import APIRouter, Depends, Request, Response

from screenreader import __version__, jobs_state
from screenreader.core.db import check_db_health
from screenreader.core.settings import Settings, get_settings
from screenreader.services.nightscout_client import NightscoutClient, NightscoutError

router = APIRouter()

_start_time = datetime.utcnow()


def _uptime_seconds() -> float:
    return (datetime.utcnow() - _start_time).total_seconds()


@router.api_route("/", methods=["GET", "HEAD"], summary="Liveness probe", response_model=None)
async def health(request: Request):
    if request.method == "HEAD":
        return Response(status_code=200)
    return {"ok": True}


@router.get("/full", summary="Full health check")
async def full_health(
    settings: Settings = Depends(get_settings),
) -> dict:
    status: dict[str, object] = {
        "ok": True,
        "uptime_seconds": _uptime_seconds(),
        "version": __version__,
    }

    ns_config = settings.nightscout
    if ns_config.enabled and ns_config.base_url:
        client = NightscoutClient(
            base_url=str(ns_config.base_url),
            token=ns_config.token,
            api_secret=ns_config.api_secret,
            timeout_seconds=ns_config.timeout_seconds,
        )
        try:
            ns_status = await client.get_status()
            status["nightscout"] = {"reachable": True, "status": ns_status.model_dump(exclude_none=True)}
        except NightscoutError as exc:
            status["nightscout"] = {"reachable": False, "error": str(exc)}
        finally:
            await client.aclose()
    else:
        status["nightscout"] = {"reachable": False, "reason": "Not configured"}

    status["database"] = await check_db_health()
    status["jobs"] = jobs_state.get_all_states()
    status["server"] = {"host": settings.server.host, "port": settings.server.port}
    return status
