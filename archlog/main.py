import logging
from fastapi import FastAPI
from archlog.config import get_settings
from archlog.api.errors import register_exception_handlers
from archlog.api.routes import candidates, credentials, repos

settings = get_settings()

# Configure application logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Set log level for archlog modules
logger = logging.getLogger("archlog")
logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)

app = FastAPI(
    title=settings.app_name,
    description="Architectural decision log mined from Git history",
    version="0.1.0",
)

register_exception_handlers(app)

# Include routers
app.include_router(repos.router, prefix="/api", tags=["Repositories"])
app.include_router(candidates.router, prefix="/api", tags=["Candidates"])
app.include_router(credentials.router, prefix="/api", tags=["Credentials"])


@app.get("/")
async def root():
    return {
        "message": "Welcome to Archlog - architectural decisions from Git history",
        "version": "0.1.0",
        "endpoints": {
            "repos": "/api/repos/{repo_id}",
            "candidates": "/api/candidates/{candidate_id}",
            "credentials": "/api/credentials/github/connect",
            "health": "/health",
            "docs": "/docs",
            "redoc": "/redoc",
        },
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.app_name}
