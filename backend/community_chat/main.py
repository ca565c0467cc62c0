from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from community_chat.core.config import settings
from community_chat.core.logging import setup_logging
from community_chat.core.exceptions import (
    ChatError,
    chat_exception_handler,
    database_exception_handler,
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from community_chat.db.init_db import init_models

# Setup Logging
setup_logging()
logger = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifecycle manager for the application.
    """
    logger.info("startup", project=settings.PROJECT_NAME, environment=settings.ENVIRONMENT)
    await init_models()
    yield
    logger.info("shutdown")

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Rooms, messages, attachments and unread state for the community platform",
    lifespan=lifespan,
    docs_url=f"{settings.API_V1_STR}/docs",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Exception Handlers
app.add_exception_handler(ChatError, chat_exception_handler)
app.add_exception_handler(OperationalError, database_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

# Health Check
@app.get("/health", tags=["system"])
async def health_check():
    """
    Public health check endpoint for load balancers.
    """
    return {"status": "ok", "environment": settings.ENVIRONMENT}


from community_chat.api.v1 import rooms, messages, attachments

app.include_router(rooms.router, prefix=f"{settings.API_V1_STR}/chat/rooms", tags=["rooms"])
app.include_router(messages.router, prefix=f"{settings.API_V1_STR}/chat/messages", tags=["messages"])
app.include_router(attachments.router, prefix=f"{settings.API_V1_STR}/chat", tags=["attachments"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("community_chat.main:app", host="0.0.0.0", port=8000, reload=True)
