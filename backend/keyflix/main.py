from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.cors import CORSMiddleware

from keyflix.api import movies
from keyflix.core.config import settings
from keyflix.utils.logger import logger


app = FastAPI(title="keyflix API", version="1.0.0")

# Add GZip compression middleware for better transfer performance
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(movies.router, prefix="/api", tags=["Movies"])


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.on_event("startup")
async def startup_event():
    if not settings.tmdb_api_read_token and not settings.tmdb_api_key:
        logger.warning("No TMDB credentials configured; movie routes will fail until TMDB_API_READ_TOKEN or TMDB_API_KEY is set")
    logger.info("keyflix API started")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("keyflix.main:app", host="0.0.0.0", port=8000)
