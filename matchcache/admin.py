"""One-shot maintenance commands over the cache store."""

import json
import logging
from typing import Any, Dict, List, Optional

from matchcache.models import ML_PROPS_PATH
from matchcache.storage import BatchDeleteResult, CacheStore, SqliteCacheStore
from matchcache.utils.errors import EntryNotFoundError
from matchcache.utils.timeutil import format_timestamp

logger = logging.getLogger(__name__)


def _filters(sport: Optional[str]) -> list:
    filters = [("preCached", True)]
    if sport:
        filters.insert(0, ("sport", sport.strip().lower()))
    return filters


async def list_entries(store: CacheStore, sport: Optional[str] = None) -> List[Dict[str, Any]]:
    """Summary rows of pre-cached entries, ordered by game start then id."""
    entries = await store.query(_filters(sport))
    rows = []
    for entry in entries:
        props = entry.ml_player_props
        rows.append({
            "id": entry.id,
            "sport": entry.sport,
            "home": entry.teams.home,
            "away": entry.teams.away,
            "gameStartTime": format_timestamp(entry.game_start_time),
            "lastRefreshedAt": format_timestamp(entry.last_refreshed_at),
            "props": len(props.top_props) if props else 0,
        })
    rows.sort(key=lambda r: (r["gameStartTime"] or "", r["id"]))
    return rows


async def inspect_entry(store: CacheStore, entry_id: str) -> Dict[str, Any]:
    """Stored document, unnormalized, plus its version. Raises EntryNotFoundError."""
    document, version = await store.get_document(entry_id)
    return {"id": entry_id, "version": version, "document": document}


async def clear_props(store: CacheStore, sport: Optional[str] = None) -> int:
    """Remove analysis.mlPlayerProps from pre-cached entries. Returns how many were cleared."""
    entries = await store.query(_filters(sport))
    cleared = 0
    for entry in entries:
        if "mlPlayerProps" not in entry.analysis:
            continue
        await store.delete_nested_field(entry.id, ML_PROPS_PATH)
        cleared += 1
    logger.info(f"🧹 Cleared mlPlayerProps from {cleared}/{len(entries)} entries")
    return cleared


async def delete_sport(store: CacheStore, sport: str, confirm: bool = False) -> BatchDeleteResult:
    """Delete every pre-cached entry of a sport in store-sized chunks."""
    if not sport or not sport.strip():
        raise ValueError("sport is required")
    if not confirm:
        raise ValueError(f"Refusing to delete all '{sport}' entries without confirmation (--yes)")
    entries = await store.query(_filters(sport))
    logger.info(f"🗑️ Deleting {len(entries)} pre-cached '{sport}' entries")
    return await store.batch_delete(e.id for e in entries)


async def run_admin(args, store: CacheStore) -> int:
    """Dispatch a parsed `admin` sub-command. Returns the process exit code."""
    command = args.admin_command
    if command == "list":
        rows = await list_entries(store, args.sport)
        for r in rows:
            print(
                f"  {r['id']:40} | {r['sport']:5} | {r['home']} vs {r['away']} | "
                f"start {r['gameStartTime'] or '?'} | refreshed {r['lastRefreshedAt'] or 'never'} | {r['props']} props"
            )
        print(f"{len(rows)} entries")
        return 0

    if command == "inspect":
        try:
            doc = await inspect_entry(store, args.entry_id)
        except EntryNotFoundError as e:
            logger.error(str(e))
            return 1
        print(json.dumps(doc, indent=2, sort_keys=True))
        return 0

    if command == "clear-props":
        cleared = await clear_props(store, args.sport)
        print(f"Cleared mlPlayerProps from {cleared} entries")
        return 0

    if command == "delete-sport":
        try:
            result = await delete_sport(store, args.sport, confirm=args.yes)
        except ValueError as e:
            logger.error(str(e))
            return 2
        print(f"Deleted {result.deleted_count} entries ({result.chunks_failed} failed chunks)")
        return 0 if result.ok else 1

    if command == "backup":
        if not isinstance(store, SqliteCacheStore):
            logger.error(f"Backups are only supported for the sqlite store, not {store.backend_name}")
            return 1
        print(f"Database backup created at: {await store.backup(args.backup_dir)}")
        return 0

    raise ValueError(f"Unknown admin command: {command}")
