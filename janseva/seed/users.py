# Seed data: demo citizens

import bcrypt

from ..config import new_id, now_utc

# ---------------------------------------------------------------------------
# Raw user definitions
# ---------------------------------------------------------------------------
USERS = [
    {"email": "rajesh.swain@email.com", "name": "Rajesh Kumar Swain", "password": "citizen123"},
    {"email": "anita.behera@email.com", "name": "Anita Behera", "password": "citizen123"},
    {"email": "kuni.sabar@email.com", "name": "Kuni Sabar", "password": "citizen123"},
]

# ---------------------------------------------------------------------------
# Import function
# ---------------------------------------------------------------------------
def import_users(db) -> dict[str, dict]:
    """Insert seed users into MongoDB. Returns {email: user_doc} mapping."""
    print("\n  Importing seed users...")
    users: dict[str, dict] = {}
    for u in USERS:
        user_doc = {
            "_id": new_id(),
            "email": u["email"],
            "name": u["name"],
            "hashed_password": bcrypt.hashpw(u["password"].encode("utf-8"), bcrypt.gensalt()).decode("utf-8"),
            "created_at": now_utc(),
        }
        db.users.insert_one(user_doc)
        users[u["email"]] = user_doc
        print(f"    {u['email']:28s}  {u['name']}")
    print(f"  => {len(USERS)} users created")
    return users
