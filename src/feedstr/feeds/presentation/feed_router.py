from typing import Optional

from fastapi import APIRouter, Depends, Form, Query, Response, status
from fastapi.responses import JSONResponse

from feedstr.feeds.presentation.feed_models import FeedIndex, FeedPublic, Nip05Response
from feedstr.main.container import Container
from feedstr.server.dependencies.container import get_container
from feedstr.server.protocol import responses

router = APIRouter()


@router.get("/", response_model=FeedIndex)
async def get_index(container: Container = Depends(get_container)):
    settings = container.settings()
    feeds = await container.feed_service().list_feeds()

    return FeedIndex(
        relays=settings.relays,
        feeds=[FeedPublic.from_domain(feed) for feed in feeds],
        version=settings.app_version,
    )


@router.post(
    "/add",
    response_model=FeedPublic,
    responses=responses.get_responses([400, 409, 500]),
    summary="Register a feed",
    description="Validates the feed, creates its identity and publishes its history. "
    "Blocks until done; use `/add-async` for long feeds.",
)
async def add_feed(
    url: str = Form(""),
    container: Container = Depends(get_container),
):
    feed = await container.feed_service().add_feed(url)
    return FeedPublic.from_domain(feed)


@router.delete(
    "/feeds",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=responses.get_responses([404]),
)
async def delete_feed(
    url: str = Query(...),
    container: Container = Depends(get_container),
):
    await container.feed_service().delete_feed(url)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/.well-known/nostr.json", response_model=Nip05Response)
async def nip05(
    name: Optional[str] = None,
    container: Container = Depends(get_container),
):
    document = await container.feed_service().lookup_nip05(name)
    return JSONResponse(
        content=document,
        headers={"Access-Control-Allow-Origin": "*"},
    )
