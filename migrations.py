"""
One-off data repair for records written by older versions of the app.

Every step is idempotent, so running it twice is harmless. Run by hand:

    python migrations.py
"""
import logging
from collections import defaultdict
from typing import Dict

from schemas import GENDERS, YEARS

logger = logging.getLogger(__name__)


def fix_profile_enums(db) -> int:
    """Null out year/gender values that are not in the current enums."""
    fixed = db["user"].update_many({"year": {"$nin": YEARS + [None]}}, {"$set": {"year": None}}).modified_count
    fixed += db["user"].update_many({"gender": {"$nin": GENDERS + [None]}}, {"$set": {"gender": None}}).modified_count
    return fixed


def drop_legacy_matches(db) -> int:
    """Matches from the old schema kept both ids in a single `users` array."""
    return db["match"].delete_many({"users": {"$exists": True}}).deleted_count


def dedupe_matches(db) -> int:
    """Keep only the earliest match per unordered pair of users."""
    groups = defaultdict(list)
    for m in db["match"].find({}, {"user1_id": 1, "user2_id": 1, "matched_at": 1}):
        if not m.get("user1_id") or not m.get("user2_id"):
            continue
        groups[frozenset((m["user1_id"], m["user2_id"]))].append(m)

    removed = 0
    for matches in groups.values():
        if len(matches) < 2:
            continue
        matches.sort(key=lambda m: (m.get("matched_at") is None, m.get("matched_at"), m["_id"]))
        extra = [m["_id"] for m in matches[1:]]
        removed += db["match"].delete_many({"_id": {"$in": extra}}).deleted_count
    return removed


def normalize_photo_likes(db) -> int:
    """Drop null/duplicate likers and the stored like counter from every photo."""
    fixed = 0
    for user in db["user"].find({"photos.0": {"$exists": True}}, {"photos": 1}):
        photos = []
        changed = False
        for photo in user["photos"]:
            likes = photo.get("likes") if isinstance(photo.get("likes"), list) else []
            clean = list(dict.fromkeys(str(uid) for uid in likes if uid))
            if clean != photo.get("likes") or "like_count" in photo or "likeCount" in photo:
                changed = True
            photo = {k: v for k, v in photo.items() if k not in ("like_count", "likeCount")}
            photo["likes"] = clean
            photos.append(photo)
        if changed:
            db["user"].update_one({"_id": user["_id"]}, {"$set": {"photos": photos}})
            fixed += 1
    return fixed


def fix_confession_lists(db) -> int:
    fixed = 0
    for c in db["confession"].find({}, {"reactions": 1, "comments": 1}):
        updates = {field: [] for field in ("reactions", "comments") if not isinstance(c.get(field), list)}
        if updates:
            db["confession"].update_one({"_id": c["_id"]}, {"$set": updates})
            fixed += 1
    return fixed


def drop_orphan_confessions(db) -> int:
    return db["confession"].delete_many({"user_id": None}).deleted_count


STEPS = [
    fix_profile_enums,
    drop_legacy_matches,
    dedupe_matches,
    normalize_photo_likes,
    fix_confession_lists,
    drop_orphan_confessions,
]


def run_migrations(db) -> Dict[str, int]:
    results = {}
    for step in STEPS:
        results[step.__name__] = step(db)
        logger.info("%s: %d documents", step.__name__, results[step.__name__])
    return results


if __name__ == "__main__":
    import database

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    if database.db is None:
        raise SystemExit("DATABASE_URL is not set")
    run_migrations(database.db)
