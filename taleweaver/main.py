import logging

from fastapi import FastAPI

from taleweaver.api.routes import router
from taleweaver.settings import settings_from_env

app = FastAPI(title="taleweaver", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=settings_from_env().log_level)
logger = logging.getLogger(__name__)


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "taleweaver", "version": "0.1.0"}
