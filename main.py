import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List

import socketio
import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import API_HOST, API_PORT, CORS_ORIGINS, LOG_LEVEL, MAX_MATCH_RESULTS
from database import Database
from errors import NoCandidates, NotFound, StorageError, ValidationError
from matcher import MatchEngine, parse_interests
from rooms import RoomRegistry
from signaling import SignalingNamespace

logger = logging.getLogger(__name__)

db = Database()


@asynccontextmanager
async def lifespan(_: FastAPI):
    await db.init_db()
    yield


app = FastAPI(title="Interest Match + Signaling Server", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------
# Realtime signaling
# ----------------------
registry = RoomRegistry()
# async_handlers=False: one client's events are handled in the order they arrive
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*" if "*" in CORS_ORIGINS else CORS_ORIGINS,
    async_handlers=False,
)
signaling_namespace = SignalingNamespace(registry)
sio.register_namespace(signaling_namespace)

asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)

# ----------------------
# Pydantic models
# ----------------------
class InterestsPayload(BaseModel):
    userId: str
    interests: str

class CandidateOut(BaseModel):
    userId: str
    score: float

# ----------------------
# Dependencies
# ----------------------
def normalize_user_id(user_id: str) -> str:
    """Identities are compared after trimming, on both write and lookup."""
    return user_id.strip()

def get_db() -> Database:
    return db

def get_engine(database: Database = Depends(get_db)) -> MatchEngine:
    return MatchEngine(database)

# ----------------------
# Error mapping
# ----------------------
@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})

@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"message": str(exc)})

@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"message": str(exc)})

@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"message": str(exc)})

@app.exception_handler(NoCandidates)
async def no_candidates_handler(request: Request, exc: NoCandidates):
    return JSONResponse(status_code=200, content={"message": "No matches found"})

# ----------------------
# Endpoints
# ----------------------
@app.get("/")
def root():
    return {"status": "ok", "service": "interest match + signaling server"}

@app.post("/api/users")
async def submit_interests(payload: InterestsPayload, database: Database = Depends(get_db)):
    user_id = normalize_user_id(payload.userId)
    interests = parse_interests(payload.interests)
    await database.upsert_interests(user_id, interests)
    logger.info("Stored %d interests for %s", len(interests), user_id)
    return {"success": True}

@app.get("/api/match/{user_id}")
async def find_match(user_id: str, engine: MatchEngine = Depends(get_engine)):
    result = await engine.find_best_match(normalize_user_id(user_id))
    return {"matchedUser": result.matched_user, "score": result.score}

@app.get("/api/match/{user_id}/candidates")
async def list_candidates(
    user_id: str,
    limit: int = Query(MAX_MATCH_RESULTS, ge=1, le=100),
    engine: MatchEngine = Depends(get_engine),
):
    ranked = await engine.rank_candidates(normalize_user_id(user_id), limit)
    candidates: List[CandidateOut] = [CandidateOut(userId=c.matched_user, score=c.score) for c in ranked]
    return {"candidates": candidates}

@app.get("/api/matches/{user_id}")
async def list_matches(user_id: str, database: Database = Depends(get_db)):
    user_id = normalize_user_id(user_id)
    await database.get_interests(user_id)  # 404 for unknown users
    return {"matches": await database.list_matches(user_id)}


async def main():
    logging.basicConfig(level=LOG_LEVEL)
    config = uvicorn.Config(asgi_app, host=API_HOST, port=API_PORT, log_level=LOG_LEVEL.lower())
    server = uvicorn.Server(config)
    logger.info("Server running on port %s", API_PORT)
    await server.serve()  # returns when server stops


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("Shutting down.")
