import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from urlrelay.proxy.pipeline import RequestPipeline
from urlrelay.proxy.settings import ProxySettings

router = APIRouter()

logger = logging.getLogger("uvicorn.error")

PROXIED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


@lru_cache()
def get_pipeline() -> RequestPipeline:
    settings = ProxySettings.from_env()
    if settings.public_url:
        logger.info(f"Using PUBLIC_URL: {settings.public_url}")
    else:
        logger.info("No PUBLIC_URL set, deriving the proxy origin from each request")
    return RequestPipeline(settings)


@router.get("/")
async def usage(request: Request, pipeline: RequestPipeline = Depends(get_pipeline)):
    origin = pipeline.proxy_origin(request)
    return JSONResponse(
        {
            "usage": f"{origin}/{{Target_URL}}",
            "message": "Append the URL you want to proxy to the end of this URL.",
        }
    )


@router.get("/iscorsneeded")
async def is_cors_needed():
    return PlainTextResponse("no")


# Register catch-all route for proxying
@router.api_route("/{path:path}", methods=PROXIED_METHODS)
async def proxy_all(
    request: Request, path: str, pipeline: RequestPipeline = Depends(get_pipeline)
):
    """Catch-all route that proxies the URL embedded in the path."""
    return await pipeline.handle(request)
