# MongoDB access for complaints. Plain blocking pymongo calls; the app runs
# them on its thread pool executor.

import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument

from .config import now_utc
from .duplicates import RECENT_WINDOW_DAYS, RECENT_WINDOW_LIMIT

WINDOW_FIELDS = {"_id": 1, "embedding": 1, "description": 1, "location": 1,
                 "category": 1, "created_at": 1}


def ensure_indexes(db) -> None:
    db.complaints.create_index([("created_at", DESCENDING)])
    db.complaints.create_index([("category", ASCENDING), ("status", ASCENDING)])
    db.complaints.create_index([("priority_score", DESCENDING)])
    db.complaints.create_index("created_by_id")
    db.users.create_index([("email", ASCENDING)], unique=True)


def fetch_recent_window(db, now: Optional[datetime] = None) -> List[dict]:
    """Complaints from the trailing week, newest first, capped for comparison."""
    now = now or now_utc()
    # stored datetimes come back naive UTC
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    since = now - timedelta(days=RECENT_WINDOW_DAYS)
    cursor = (db.complaints.find({"created_at": {"$gte": since}}, WINDOW_FIELDS)
              .sort("created_at", DESCENDING).limit(RECENT_WINDOW_LIMIT))
    return list(cursor)


def count_same_location(db, location: str, exclude_id: Optional[str] = None) -> int:
    """Count other complaints whose location contains ``location`` (case-insensitive)."""
    query = {"location": {"$regex": re.escape(location.strip()), "$options": "i"}}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    return db.complaints.count_documents(query)


def insert_complaint(db, doc: dict) -> dict:
    db.complaints.insert_one(doc)
    return doc


def list_complaints(db, query: Optional[dict] = None, by_priority: bool = True) -> List[dict]:
    sort = [("priority_score", DESCENDING), ("created_at", DESCENDING)] if by_priority \
        else [("created_at", DESCENDING)]
    return list(db.complaints.find(query or {}, {"embedding": 0}).sort(sort))


def update_status(db, complaint_id: str, status: str) -> Optional[dict]:
    return db.complaints.find_one_and_update(
        {"_id": complaint_id},
        {"$set": {"status": status, "updated_at": now_utc()}},
        projection={"embedding": 0}, return_document=ReturnDocument.AFTER)


def find_user_by_email(db, email: str) -> Optional[dict]:
    return db.users.find_one({"email": email})


def find_user_by_id(db, user_id: str) -> Optional[dict]:
    return db.users.find_one({"_id": user_id})


def insert_user(db, doc: dict) -> dict:
    db.users.insert_one(doc)
    return doc
