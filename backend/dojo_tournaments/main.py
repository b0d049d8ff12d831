import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dojo_tournaments.database import init_db
from dojo_tournaments.routes import brackets, events, participants, runtime
from dojo_tournaments.services.errors import BracketEngineError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Dojo Tournament Bracket Engine API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
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
app.include_router(events.router, prefix="/api", tags=["events"])
app.include_router(participants.router, prefix="/api", tags=["participants"])
app.include_router(brackets.router, prefix="/api", tags=["brackets"])
# Match runtime (start, score, outcome)
app.include_router(runtime.router, prefix="/api", tags=["runtime"])


@app.exception_handler(BracketEngineError)
async def bracket_engine_error_handler(request: Request, exc: BracketEngineError):
    logger.warning("Engine error on %s: %s - %s %s", request.url.path, exc.code, exc.message, exc.context)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("Registered %d routes", len([r for r in app.routes if getattr(r, "path", None)]))


@app.get("/api/health")
def health():
    return {"status": "ok"}
