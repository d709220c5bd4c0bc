from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.logging_config import get_logger, setup_logging
from app.routers import operator, web_chat, whatsapp_webhook
from app.services.reply_worker import get_reply_dispatcher, shutdown_reply_dispatcher

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Storefront Messaging API",
    description="WhatsApp and web chat ingestion with AI replies and human escalation",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(whatsapp_webhook.router)
app.include_router(web_chat.router)
app.include_router(operator.router)


@app.on_event("startup")
async def start_reply_dispatcher() -> None:
    dispatcher = get_reply_dispatcher()
    logger.info(
        "Reply dispatcher ready",
        extra={"context": {"max_concurrency": dispatcher.max_concurrency, "max_pending": dispatcher.max_pending}},
    )


@app.on_event("shutdown")
async def stop_reply_dispatcher() -> None:
    await shutdown_reply_dispatcher()


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}
