import asyncio

from fastapi import Depends, FastAPI

from replyguard.config import settings
from replyguard.dependencies import ServiceFactory, dispatcher, get_service_factory
from replyguard.logging_config import get_logger, setup_logging
from replyguard.routers import conversations
from replyguard.services.health_service import check_upstreams

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="ReplyGuard API",
    description="Policy-validated AI reply suggestions for customer conversations",
    version="0.1.0",
)

app.include_router(conversations.router)


@app.on_event("startup")
async def start_background_dispatcher() -> None:
    dispatcher.start()


@app.on_event("shutdown")
async def stop_background_dispatcher() -> None:
    await asyncio.to_thread(dispatcher.shutdown, drain=True, timeout=30.0)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/upstream")
def upstream_health(factory: ServiceFactory = Depends(get_service_factory)):
    return check_upstreams(factory.model_client, factory.retriever)
