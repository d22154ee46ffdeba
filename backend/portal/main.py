import logging
import os
import subprocess

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portal.database import init_db
from portal.routes import bracket, matches, standings, teams, tournaments, users

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Student Union Portal API")


def get_build_info() -> str:
    """BUILD_HASH from the environment (set by deploys), else the short git commit."""
    if os.getenv("BUILD_HASH"):
        return os.environ["BUILD_HASH"]
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=os.path.dirname(os.path.dirname(__file__)),
            capture_output=True,
            text=True,
            timeout=2,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (OSError, subprocess.SubprocessError):
        pass
    return "dev"


BUILD_HASH = get_build_info()

_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(users.router, prefix="/api", tags=["users"])
app.include_router(tournaments.router, prefix="/api", tags=["tournaments"])
app.include_router(teams.router, prefix="/api", tags=["teams"])
app.include_router(matches.router, prefix="/api", tags=["matches"])
# Read-only bracket rendering data
app.include_router(bracket.router, prefix="/api", tags=["bracket"])
app.include_router(standings.router, prefix="/api", tags=["standings"])


@app.on_event("startup")
def on_startup():
    init_db()  # imports models and creates tables
    logger.info("Student Union Portal API started (build %s, %d routes)", BUILD_HASH, len(app.routes))


@app.get("/api/health")
def health_check():
    """Diagnostic endpoint to verify which code is running"""
    return {"app_name": "Student Union Portal API", "build_hash": BUILD_HASH, "status": "healthy"}
