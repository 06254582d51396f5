import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ripply.api.v1.router import api_router
from ripply.core.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)


@app.exception_handler(SQLAlchemyError)
async def handle_data_layer_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("data layer failure", extra={"path": request.url.path}, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(api_router, prefix="/api")
