"""Job CRUD routes, scoped to the tenant of the bearer token."""

import json
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from cadence.engine import CadenceEngine
from cadence.errors import InvalidSpecError
from cadence.jobs.types import JobSpec
from cadence.jobs.validation import error_entry, validate_spec
from cadence.server.auth import get_tenant

router = APIRouter()


def get_engine(request: Request) -> CadenceEngine:
    return request.app.state.engine


async def _read_spec(request: Request, engine: CadenceEngine) -> JobSpec:
    try:
        payload: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidSpecError(
            "Request body is not valid JSON", errors=[error_entry("body", str(e))]
        ) from e

    config = engine.config
    return validate_spec(
        payload,
        allowed_base_urls=config.http.allowed_base_urls,
        allowed_subjects=config.broker.allowed_subjects,
    )


@router.post("/jobs", status_code=201)
async def create_job(
    request: Request,
    tenant: str = Depends(get_tenant),
    engine: CadenceEngine = Depends(get_engine),
) -> dict[str, str]:
    spec = await _read_spec(request, engine)
    job = await engine.create_job(tenant, spec)
    return {"status": "success", "jobId": job.job_id}


@router.put("/jobs/{job_id}")
async def update_job(
    job_id: str,
    request: Request,
    tenant: str = Depends(get_tenant),
    engine: CadenceEngine = Depends(get_engine),
) -> JSONResponse:
    spec = await _read_spec(request, engine)
    job, replaced = await engine.update_job(tenant, job_id, spec)
    return JSONResponse(
        status_code=200 if replaced else 201,
        content={"status": "success", "jobId": job.job_id},
    )


@router.get("/jobs")
async def read_all_jobs(
    tenant: str = Depends(get_tenant),
    engine: CadenceEngine = Depends(get_engine),
) -> list[dict[str, Any]]:
    return [job.to_dict() for job in await engine.read_all_jobs(tenant)]


@router.get("/jobs/{job_id}")
async def read_job(
    job_id: str,
    tenant: str = Depends(get_tenant),
    engine: CadenceEngine = Depends(get_engine),
) -> dict[str, Any]:
    job = await engine.read_job(tenant, job_id)
    return job.to_dict()


@router.delete("/jobs", status_code=204)
async def delete_all_jobs(
    tenant: str = Depends(get_tenant),
    engine: CadenceEngine = Depends(get_engine),
) -> Response:
    await engine.delete_all_jobs(tenant)
    return Response(status_code=204)


@router.delete("/jobs/{job_id}", status_code=204)
async def delete_job(
    job_id: str,
    tenant: str = Depends(get_tenant),
    engine: CadenceEngine = Depends(get_engine),
) -> Response:
    await engine.delete_job(tenant, job_id)
    return Response(status_code=204)
