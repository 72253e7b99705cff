# Seed data: complaints spread over the last fortnight, scored as live intake would

from datetime import timedelta

from ..config import new_id, now_utc
from ..models import ComplaintStatus
from ..priority import calculate_priority

# ---------------------------------------------------------------------------
# Raw complaint definitions (reporter is an email from seed.users, or None)
# ---------------------------------------------------------------------------
COMPLAINTS = [
    {"category": "Drainage", "location": "MG Road, Sector 4",
     "description": "Storm drain is clogged and the road floods every time it rains.",
     "reporter": "rajesh.swain@email.com", "days_ago": 1, "status": ComplaintStatus.ASSIGNED},
    {"category": "Garbage", "location": "Market Street near bus stand",
     "description": "Garbage has not been collected for a week and the smell is unbearable.",
     "reporter": "anita.behera@email.com", "days_ago": 2, "status": ComplaintStatus.IN_PROGRESS},
    {"category": "Road Damage", "location": "MG Road, Sector 4",
     "description": "Large pothole in the middle of the road causing accidents at night.",
     "reporter": None, "days_ago": 3, "status": ComplaintStatus.ASSIGNED},
    {"category": "Streetlight Issue", "location": "Lake View Colony Lane 2",
     "description": "Streetlight near the park has been dark for ten days.",
     "reporter": "kuni.sabar@email.com", "days_ago": 4, "status": ComplaintStatus.ASSIGNED},
    {"category": "Water Leakage", "location": "Temple Road junction",
     "description": "Water pipe is leaking onto the road and wasting drinking water.",
     "reporter": "rajesh.swain@email.com", "days_ago": 6, "status": ComplaintStatus.COMPLETED},
    {"category": "Other", "location": "Old Town Library",
     "description": "Stray cattle are blocking the library entrance every morning.",
     "reporter": None, "days_ago": 12, "status": ComplaintStatus.ASSIGNED},
]

# ---------------------------------------------------------------------------
# Import function
# ---------------------------------------------------------------------------
async def import_complaints(db, users: dict[str, dict], embedder) -> list[dict]:
    """Insert seed complaints oldest first so location counts build up like live traffic."""
    print("\n  Importing complaints...")
    now = now_utc()
    inserted: list[dict] = []

    for c in sorted(COMPLAINTS, key=lambda c: -c["days_ago"]):
        reporter = users.get(c["reporter"]) if c["reporter"] else None
        same_location = sum(1 for d in inserted if c["location"].lower() in d["location"].lower())
        priority = calculate_priority(c["category"], c["location"], same_location)
        created = now - timedelta(days=c["days_ago"])
        doc = {
            "_id": new_id(),
            "image": None,
            "category": c["category"],
            "description": c["description"],
            "location": c["location"],
            "status": c["status"].value,
            "created_by": reporter["name"] if reporter else "Anonymous",
            "created_by_id": reporter["_id"] if reporter else None,
            "embedding": await embedder.embed(c["description"]),
            "ai_duplicate_check": {"is_duplicate": False, "similarity": 0,
                                   "matching_complaint_id": None, "matched_field": None},
            "priority_score": priority.score,
            "priority_breakdown": priority.breakdown.model_dump(),
            "ai_severity_level": priority.severity_level.value,
            "ai_reasoning": priority.reasoning,
            "created_at": created,
            "updated_at": created,
        }
        db.complaints.insert_one(doc)
        inserted.append(doc)
        print(f"    {c['category']:18s} {priority.score:3d} ({priority.severity_level.value:8s}) {c['location']}")

    print(f"  => {len(inserted)} complaints created")
    return inserted
