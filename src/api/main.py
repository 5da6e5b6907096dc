from __future__ import annotations

from fastapi import FastAPI

from src.api.routes.process import router as process_router
from src.api.routes.search import router as search_router
from src.logging_config import setup_logging

setup_logging()

app = FastAPI(
    title="Creator Transcript API",
    description="Transcript ingestion jobs and hybrid retrieval over creator videos",
    version="0.1.0",
)

app.include_router(process_router)
app.include_router(search_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
