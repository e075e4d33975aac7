#!/usr/bin/env python3
"""
Report duplicate (user_id, subscription_id) rows in `cancellations` and print
the unique index the upsert path expects.

Run:  python scripts/check_cancellations.py

.env needs:
  SUPABASE_URL=https://your-project.supabase.co
  SUPABASE_SERVICE_ROLE_KEY=service-role-key
"""
import asyncio
import sys
from collections import Counter

from cancelflow.config import get_settings
from cancelflow.store import SupabaseCancellationStore

MIGRATION = """\
-- keep only the most recent row per pair first, then:
ALTER TABLE {table}
  ADD CONSTRAINT {table}_user_subscription_key UNIQUE (user_id, subscription_id);
"""


async def main() -> int:
    settings = get_settings()
    store = SupabaseCancellationStore(settings=settings)
    try:
        sb = await store.client()
    except RuntimeError as exc:
        print(f"❌ {exc}")
        return 1

    res = await sb.table(settings.cancellations_table).select("user_id,subscription_id").execute()
    pairs = Counter((r["user_id"], r["subscription_id"]) for r in res.data or [])
    dupes = {k: n for k, n in pairs.items() if n > 1}

    print(f"{len(pairs)} distinct pairs, {len(dupes)} duplicated")
    for (user_id, subscription_id), n in sorted(dupes.items()):
        print(f"  {n}×  {user_id}  {subscription_id}")

    print("\nMigration:")
    print(MIGRATION.format(table=settings.cancellations_table))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
