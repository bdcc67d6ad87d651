from fastapi import APIRouter, Depends, Form
from fastapi.responses import JSONResponse

from feedstr.jobs.job_models import AddAsyncError, AddAsyncResponse, JobStatusPublic
from feedstr.main.container import Container
from feedstr.main.exceptions import BadRequestException, NotFoundException
from feedstr.server.dependencies.container import get_container

router = APIRouter()


@router.post(
    "/add-async",
    response_model=AddAsyncResponse,
    responses={400: {"model": AddAsyncError}},
)
async def add_feed_async(
    url: str = Form(""),
    container: Container = Depends(get_container),
):
    try:
        job_id = container.job_manager().submit(url)
    except BadRequestException as exc:
        return JSONResponse(
            status_code=400, content=AddAsyncError(error=str(exc)).model_dump()
        )

    return AddAsyncResponse(job_id=job_id)


@router.get(
    "/add-status/{job_id}",
    response_model=JobStatusPublic,
    response_model_exclude_none=True,
)
async def get_add_status(job_id: str, container: Container = Depends(get_container)):
    try:
        job = container.job_manager().query(job_id)
    except NotFoundException as exc:
        return JSONResponse(
            status_code=404, content={"status": "failed", "error": str(exc)}
        )

    return JobStatusPublic.from_job(job)
