import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import settings, setup_logging
from database import MongoStore, NEWEST_FIRST, get_store, serialize
from gamification import award, carbon_offset, compute_impact, count_items, derive_badges, format_badges, reconcile_badges
from schemas import LoginRequest, Pickup as PickupSchema, PickupRequest, Pledge as PledgeSchema, RegisterRequest, User as UserSchema

setup_logging()
logger = logging.getLogger(__name__)

PLEDGE_FEED_LIMIT = 20
LEADERBOARD_SIZE = 10

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)

app = FastAPI(title=settings.APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PyMongoError)
def store_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Store failure on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Server error", "error": str(exc)})


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Server error", "error": str(exc)})


def require_store(store: Optional[MongoStore] = Depends(get_store)) -> MongoStore:
    if store is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return store


# ---------- Basic routes ----------
@app.get("/")
def root():
    return {"message": f"{settings.APP_NAME} running"}


@app.get("/api/health")
def health(store: Optional[MongoStore] = Depends(get_store)):
    info = {
        "message": "EcoCollect API is running!",
        "database": "Disconnected",
        "collections": [],
    }
    names = store.ping() if store is not None else None
    if names is not None:
        info["database"] = "Connected"
        info["collections"] = names[:10]
    return info


# ---------- Auth endpoints ----------
@app.post("/api/register", status_code=201)
def register(req: RegisterRequest, store: MongoStore = Depends(require_store)):
    if store.find_one("user", {"email": req.email}):
        raise HTTPException(status_code=400, detail="User already exists")

    user = UserSchema(email=req.email, password_hash=pwd_context.hash(req.password))
    try:
        store.create_document("user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")

    logger.info("Registered %s", req.email)
    return {"message": "User registered successfully"}


@app.post("/api/login")
def login(req: LoginRequest, store: MongoStore = Depends(require_store)):
    user = store.find_one("user", {"email": req.email})
    if not user or not user.get("password_hash"):
        raise HTTPException(status_code=400, detail="Invalid credentials")

    if not pwd_context.verify(req.password, user["password_hash"]):
        raise HTTPException(status_code=400, detail="Invalid credentials")

    return {
        "message": "Login successful",
        "user": {
            "email": user["email"],
            "xp": user.get("xp", 0),
            "streak": user.get("streak", 0),
            "badges": user.get("badges", []),
        },
    }


# ---------- Pickup endpoints ----------
@app.post("/api/pickups", status_code=201)
def schedule_pickup(req: PickupRequest, store: MongoStore = Depends(require_store)):
    data = PickupSchema(**req.model_dump()).model_dump()
    _id = store.create_document("pickup", data)

    # no transaction: the pickup stays saved if this increment fails
    award(store, req.user, "pickup_scheduled")

    return {"message": "Pickup scheduled successfully", "pickup": serialize(store.find_by_id("pickup", _id))}


@app.get("/api/pickups/{user_email}")
def list_pickups(user_email: str, store: MongoStore = Depends(require_store)):
    docs = store.get_documents("pickup", {"user": user_email}, sort=NEWEST_FIRST)
    return [serialize(d) for d in docs]


@app.put("/api/pickups/{pickup_id}/complete")
def complete_pickup(pickup_id: str, store: MongoStore = Depends(require_store)):
    try:
        pickup = store.update_by_id("pickup", pickup_id, {"status": "Completed"})
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid pickup id")

    if pickup is None:
        raise HTTPException(status_code=404, detail="Pickup not found")

    # not idempotent, completing twice awards twice
    award(store, pickup["user"], "pickup_completed")
    logger.info("Pickup %s completed for %s", pickup_id, pickup["user"])

    return {"message": "Pickup marked as completed", "pickup": serialize(pickup)}


# ---------- Pledge endpoints ----------
@app.post("/api/pledges", status_code=201)
def add_pledge(pledge: PledgeSchema, store: MongoStore = Depends(require_store)):
    data = pledge.model_dump()
    _id = store.create_document("pledge", data)
    award(store, pledge.user, "pledge_submitted")
    return {"message": "Pledge added successfully", "pledge": serialize(store.find_by_id("pledge", _id))}


@app.get("/api/pledges")
def list_pledges(store: MongoStore = Depends(require_store)):
    docs = store.get_documents("pledge", sort=NEWEST_FIRST, limit=PLEDGE_FEED_LIMIT)
    return [serialize(d) for d in docs]


# ---------- Stats & community ----------
@app.get("/api/stats/{user_email}")
def get_stats(user_email: str, store: MongoStore = Depends(require_store)):
    user = store.find_one("user", {"email": user_email})
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    pickups = store.get_documents("pickup", {"user": user_email})
    impact = compute_impact(pickups)
    xp = user.get("xp", 0)
    badges = derive_badges(xp)
    reconcile_badges(store, user, badges)

    return {
        **impact,
        "xpEarned": xp,
        "totalPickups": len(pickups),
        "streakDays": user.get("streak", 0),
        "badgesEarned": format_badges(badges),
    }


@app.get("/api/community/leaderboard")
def leaderboard(store: MongoStore = Depends(require_store)):
    docs = store.get_documents(
        "user",
        projection={"email": 1, "xp": 1, "badges": 1},
        sort=[("xp", -1)],
        limit=LEADERBOARD_SIZE,
    )
    return [serialize(d) for d in docs]


@app.get("/api/community/goal")
def community_goal(store: MongoStore = Depends(require_store)):
    pickups = store.get_documents("pickup", projection={"materials": 1})
    return {"totalCarbon": carbon_offset(count_items(pickups))}
