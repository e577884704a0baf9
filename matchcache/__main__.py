import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from matchcache.admin import run_admin
from matchcache.api_clients import PropsScorerClient
from matchcache.config import ConfigManager
from matchcache.jobs import DedupDetector, EvictionJob, RefreshOrchestrator
from matchcache.storage import CacheStore, InMemoryCacheStore, SqliteCacheStore
from matchcache.utils import CacheStoreError, ConfigError, JobLock, StoreUnavailableError


def setup_logging(log_level):
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="matchcache", description="Match analysis cache jobs")
    parser.add_argument('--config', type=str, default='matchcache_config.json', help='Path to config file')
    parser.add_argument('--log-level', type=str, default='INFO', help='Logging level')
    parser.add_argument('--lock-file', type=str, help='Custom path to lock file')
    parser.add_argument('--db-path', type=str, help='Override store.path')
    parser.add_argument('--show-config', action='store_true', help='Print effective non-secret config and exit')

    sub = parser.add_subparsers(dest='command')

    refresh = sub.add_parser('refresh', help='Re-score upcoming pre-cached matchups')
    refresh.add_argument('--sport', action='append', help='Sport to refresh (repeatable, default from config)')

    evict = sub.add_parser('evict', help='Delete expired pre-cached entries')
    evict.add_argument('--sport', action='append', help='Limit to sport (repeatable)')
    evict.add_argument('--dry-run', action='store_true', help='Report what would be deleted without deleting')

    dedup = sub.add_parser('dedup', help='Find matchups cached under more than one id')
    dedup.add_argument('--sport', action='append', help='Limit to sport (repeatable)')
    dedup.add_argument('--delete', action='store_true', help='Delete non-keeper duplicates')

    admin = sub.add_parser('admin', help='Maintenance commands')
    admin_sub = admin.add_subparsers(dest='admin_command', required=True)
    admin_list = admin_sub.add_parser('list', help='List pre-cached entries')
    admin_list.add_argument('--sport', type=str)
    admin_inspect = admin_sub.add_parser('inspect', help='Print one stored document')
    admin_inspect.add_argument('entry_id', type=str)
    admin_clear = admin_sub.add_parser('clear-props', help='Remove analysis.mlPlayerProps')
    admin_clear.add_argument('--sport', type=str)
    admin_delete = admin_sub.add_parser('delete-sport', help='Delete all pre-cached entries of a sport')
    admin_delete.add_argument('sport', type=str)
    admin_delete.add_argument('--yes', action='store_true', help='Confirm deletion')
    admin_backup = admin_sub.add_parser('backup', help='Copy the sqlite store into a backup directory')
    admin_backup.add_argument('--backup-dir', type=str, default='backups')

    return parser


def create_store(cfg: ConfigManager) -> CacheStore:
    chunk_size = cfg.eviction.batch_delete_chunk_size
    if cfg.store.backend == 'memory':
        return InMemoryCacheStore(batch_delete_chunk_size=chunk_size)
    return SqliteCacheStore(cfg.store.path, batch_delete_chunk_size=chunk_size)


async def run_command(args, cfg: ConfigManager, store: CacheStore) -> int:
    logger = logging.getLogger("matchcache")

    if args.command == 'admin':
        return await run_admin(args, store)

    if args.command == 'refresh':
        async with PropsScorerClient(cfg.scorer) as scorer:
            job = RefreshOrchestrator.from_config(cfg, store, scorer)
            if args.sport:
                job.sports = [s.strip().lower() for s in args.sport]
            report = await job.run()
    elif args.command == 'evict':
        job = EvictionJob.from_config(cfg, store, sports=args.sport, dry_run=args.dry_run)
        report = await job.run()
    elif args.command == 'dedup':
        job = DedupDetector.from_config(cfg, store, sports=args.sport)
        report = await job.run(delete=args.delete)
    else:
        raise ValueError(f"Unknown command: {args.command}")

    await store.record_job_run(report.job, report.to_summary())
    if report.error_count:
        logger.warning(f"⚠️ {report.error_count} entries failed; see entry_outcome lines")
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    logger = logging.getLogger("matchcache")

    try:
        cfg = ConfigManager(args.config)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if args.db_path:
        cfg.store.path = args.db_path

    if args.show_config:
        print(json.dumps(cfg.to_dict(), indent=2))
        return 0

    if not args.command:
        parser.print_help()
        return 2

    try:
        cfg.validate_for_job(args.command)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    if args.log_level.upper() == 'DEBUG':
        cfg.log_config_summary()

    # Acquire lock before proceeding
    lock = JobLock(args.command, args.lock_file)
    if not lock.acquire():
        logger.error(f"Failed to acquire lock. Another {args.command} run might be in progress. Exiting.")
        return 1

    try:
        async with create_store(cfg) as store:
            await store.ping()
            return await run_command(args, cfg, store)
    except StoreUnavailableError as e:
        logger.error(f"❌ Store unavailable, nothing was processed: {e}")
        return 1
    except CacheStoreError as e:
        logger.error(f"❌ Store error aborted the run: {e}", exc_info=True)
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        lock.release()


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
