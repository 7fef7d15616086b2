# main.py
"""
Reference remote store service for the habit core.
Start with: uvicorn main:app --reload
"""
from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date, datetime, timedelta
import logging
import os

from database import engine, Base, get_db
import models  # noqa: F401  (registers tables)
import schemas
import crud
import aggregation
from config import DEFAULT_DAILY_GOAL_MINUTES
from stats import STREAK_LOOKBACK_DAYS, day_bounds

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger("habitloop.api")

app = FastAPI(title="Habitloop Store")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup_event():
    # create tables
    Base.metadata.create_all(bind=engine)


# Health
@app.get("/health")
def health():
    return {"ok": True, "time": datetime.utcnow().isoformat()}


# APPS
@app.get("/users/{owner}/apps", response_model=List[schemas.App])
def list_apps_for_user(owner: str, profile: Optional[str] = None, db: Session = Depends(get_db)):
    return crud.list_apps(db, owner, profile)

@app.put("/users/{owner}/apps", response_model=schemas.App)
def upsert_app_for_user(owner: str, body: schemas.AppIn, db: Session = Depends(get_db)):
    return crud.upsert_app(db, owner, body)

@app.delete("/apps/{app_id}")
def delete_app(app_id: str, db: Session = Depends(get_db)):
    # deleting an absent app is not an error
    removed = crud.delete_app(db, app_id)
    return {"ok": True, "removed": removed}


# USAGE LOGS
@app.post("/users/{owner}/usage-logs", response_model=schemas.UsageLog)
def open_usage_log(owner: str, body: schemas.UsageLogOpen, db: Session = Depends(get_db)):
    return crud.insert_usage_log(db, owner, body)

@app.patch("/usage-logs/{log_id}/close", response_model=schemas.UsageLog)
def close_usage_log(log_id: str, body: schemas.UsageLogClose, db: Session = Depends(get_db)):
    row = crud.close_usage_log(db, log_id, body)
    if not row: raise HTTPException(status_code=404, detail="Usage log not found")
    return row

@app.get("/users/{owner}/usage-logs", response_model=List[schemas.UsageLog])
def list_usage_logs_for_user(owner: str, start: datetime, end: datetime, db: Session = Depends(get_db)):
    if end < start:
        raise HTTPException(status_code=400, detail="end is before start")
    return crud.list_usage_logs(db, owner, start, end)


# FOCUS SESSIONS
@app.post("/users/{owner}/focus-sessions", response_model=schemas.FocusSession)
def start_focus_session(owner: str, body: schemas.FocusSessionStart, db: Session = Depends(get_db)):
    return crud.insert_focus_session(db, owner, body)

@app.patch("/focus-sessions/{session_id}/end", response_model=schemas.FocusSession)
def end_focus_session(session_id: str, body: schemas.FocusSessionEnd, db: Session = Depends(get_db)):
    row = crud.end_focus_session(db, session_id, body)
    if not row: raise HTTPException(status_code=404, detail="Session not found")
    return row


# STREAKS
@app.get("/users/{owner}/streaks", response_model=List[schemas.Streak])
def list_streaks_for_user(owner: str, start: date, end: date, db: Session = Depends(get_db)):
    return crud.list_streaks(db, owner, start, end)

@app.put("/users/{owner}/streaks/{day}", response_model=schemas.Streak)
def upsert_streak_for_user(owner: str, day: date, body: schemas.StreakIn, db: Session = Depends(get_db)):
    return crud.upsert_streak(db, owner, day, body)


# STATS
@app.get("/users/{owner}/stats", response_model=schemas.UsageSummary)
def stats_for_user(
    owner: str,
    day: Optional[date] = None,
    goal: int = Query(default=DEFAULT_DAILY_GOAL_MINUTES, gt=0),
    db: Session = Depends(get_db),
):
    day = day or datetime.utcnow().date()
    week_start = day - timedelta(days=aggregation.WEEK_DAYS - 1)
    logs = [schemas.UsageLog.model_validate(r) for r in crud.list_usage_logs(db, owner, *day_bounds(week_start, day))]
    streaks = crud.list_streaks(db, owner, day - timedelta(days=STREAK_LOOKBACK_DAYS - 1), day)
    return aggregation.summarize(logs, streaks, day, goal)
