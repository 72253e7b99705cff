# Janseva Tracker: Seed Data Importer
# Resets the users and complaints collections and populates demo data
#
# Usage:  python -m janseva.importer      (from repo root)

import asyncio

from pymongo import MongoClient

from . import config, storage
from .providers import build_providers
from .seed.users import import_users, USERS
from .seed.complaints import import_complaints, COMPLAINTS


async def main():
    print("=" * 64)
    print("  Janseva Tracker: Data Importer")
    print("=" * 64)

    # ------------------------------------------------------------------
    # 1. Connect MongoDB
    # ------------------------------------------------------------------
    print("\n[1/4] Connecting to MongoDB...")
    mongo_client = MongoClient(config.MONGODB_URL)
    db = mongo_client[config.MONGODB_DB]
    print(f"  Connected: {config.MONGODB_URL} (db: {config.MONGODB_DB})")

    # ------------------------------------------------------------------
    # 2. Reset collections
    # ------------------------------------------------------------------
    print("\n[2/4] Resetting collections...")
    for coll_name in ["users", "complaints"]:
        db[coll_name].drop()
    storage.ensure_indexes(db)
    print("  MongoDB: users, complaints")

    # ------------------------------------------------------------------
    # 3. Seed users
    # ------------------------------------------------------------------
    print("\n[3/4] Users")
    users = import_users(db)

    # ------------------------------------------------------------------
    # 4. Seed complaints
    # ------------------------------------------------------------------
    providers = build_providers()
    print(f"\n[4/4] Complaints (AI backend: {providers.backend})")
    await import_complaints(db, users, providers.embedder)

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------
    print("\n" + "=" * 64)
    print("  IMPORT COMPLETE")
    print("=" * 64)
    print(f"  Users:       {len(USERS)}")
    print(f"  Complaints:  {len(COMPLAINTS)}")
    print()
    print("  Test credentials:")
    for u in USERS:
        print(f"    {u['email']:28s} / {u['password']}")
    mongo_client.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
