"""HTTP routes exposing profile lookups, traces and pipeline health."""

from __future__ import annotations

import math
from typing import Dict, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from api.profiles import LookupResult, ProfilePipeline

router = APIRouter(tags=["profiles"])


def _pipeline(request: Request) -> ProfilePipeline:
    return request.app.state.pipeline


def _client_ip(request: Request) -> Optional[str]:
    if request.app.state.settings.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def _respond(result: LookupResult) -> JSONResponse:
    headers: Dict[str, str] = {"X-Trace-Id": result.trace_id}
    retry_after = result.retry_after
    if retry_after is not None:
        headers["Retry-After"] = str(max(int(math.ceil(retry_after)), 1))
    return JSONResponse(
        content=result.to_dict(), status_code=result.status_code, headers=headers
    )


@router.get("/profiles/stats")
async def profile_stats_by_url(
    request: Request, url: str = Query(..., min_length=1)
) -> JSONResponse:
    """Detect the platform from ``url`` and return the normalized profile."""

    result = await _pipeline(request).lookup(url.strip(), client_ip=_client_ip(request))
    return _respond(result)


@router.get("/profiles/health")
async def profiles_health(request: Request) -> Dict[str, object]:
    return {"status": "ok", **_pipeline(request).stats()}


@router.get("/profiles/{platform}/{username}")
async def profile_stats(request: Request, platform: str, username: str) -> JSONResponse:
    reference = {"platform": platform, "username": username}
    result = await _pipeline(request).lookup(reference, client_ip=_client_ip(request))
    return _respond(result)


@router.get("/traces/{trace_id}")
async def get_trace(request: Request, trace_id: str) -> Dict[str, object]:
    trace = _pipeline(request).tracer.get_trace(trace_id)
    if trace is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trace not found")
    return trace.to_dict()
