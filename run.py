#!/usr/bin/env python3
"""
MongoDB Cloner entry point.

    python run.py                  clone databases between two deployments
    python run.py --skip-indexes   clone without replaying secondary indexes
    python run.py --xronox         externalize collections to blob storage
    python run.py --xronox --resume --validate
"""

import argparse
import logging
import os
import sys

from config import config
from cli import prompts
from clone.conflicts import CloneAborted
from clone.runner import run_clone_session
from externalize.migrator import run_externalization_session
from utils.azure_storage import AzureStorageRouter
from utils.mongo import close_quietly, connect_to_mongo, list_collection_names, list_database_names

XRONOX_EXCLUDED_DATABASES = ('admin', 'local')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Resilient MongoDB cloner")
    parser.add_argument('--skip-indexes', action='store_true', help="do not replay secondary indexes")
    parser.add_argument('--xronox', action='store_true', help="externalize records to blob storage")
    parser.add_argument('--resume', action='store_true', help="skip records that already have a head")
    parser.add_argument('--validate', action='store_true', help="read back every stored body after migrating")
    parser.add_argument('--env', default=os.environ.get('CLONER_ENV', 'default'), choices=sorted(config))
    return parser.parse_args(argv)


def run_clone_mode(cfg, skip_indexes=False):
    print("Welcome to MongoDB Cloner")
    source_uri = prompts.prompt_mongo_uri(cfg.MONGODB_SOURCE_URI)

    source = destination = None
    try:
        print("Connecting to MongoDB...")
        source = connect_to_mongo(source_uri, cfg)
        print("✓ Connected successfully!")

        _, database_names = list_database_names(source)
        if not database_names:
            print("No databases found to clone.")
            return

        selected = prompts.prompt_database_selection(database_names)
        if not selected:
            print("No databases selected. Exiting.")
            return
        print(f"Ready to clone: {', '.join(selected)}")

        destination_uri = prompts.prompt_destination_mongo_uri(cfg.MONGODB_DESTINATION_URI)
        print("Connecting to destination MongoDB...")
        destination = connect_to_mongo(destination_uri, cfg)
        print("✓ Connected successfully!")
    except Exception:
        close_quietly(source, 'source')
        close_quietly(destination, 'destination')
        raise

    run_clone_session(
        source,
        destination,
        selected,
        prompts.prompt_conflict_decision,
        cfg,
        skip_indexes=skip_indexes,
        confirm=prompts.prompt_to_be_sure,
        source_uri=source_uri,
        destination_uri=destination_uri,
    )


def run_xronox_mode(cfg, resume=False, validate=False):
    print("Welcome to MongoDB Cloner (Xronox mode)")
    source_uri = prompts.prompt_mongo_uri(cfg.MONGODB_SOURCE_URI)

    client = None
    try:
        print("Connecting to MongoDB for Xronox migration...")
        client = connect_to_mongo(source_uri, cfg)
        print("✓ Connected successfully!")

        _, database_names = list_database_names(client, excluded=XRONOX_EXCLUDED_DATABASES)
        if not database_names:
            print("No databases available for Xronox migration.")
            return

        database = prompts.prompt_single_database(database_names)
        available = list_collection_names(client, database)
        if not available:
            print(f"Database '{database}' has no collections to migrate.")
            return

        collections = prompts.prompt_collection_selection(available)
        if not collections:
            print("No collections selected. Exiting Xronox mode.")
            return
    except Exception:
        close_quietly(client, 'Xronox Mongo')
        raise

    # Heads default to the deployment we just read from
    cfg.XRONOX_MONGODB_URI = cfg.XRONOX_MONGODB_URI or source_uri
    router = AzureStorageRouter(cfg, database_override=database)

    run_externalization_session(
        client,
        router,
        database,
        collections,
        cfg,
        resume=resume,
        validate=validate,
        confirm=lambda: prompts.prompt_to_be_sure("Ready to start the Xronox migration? (Y/N)"),
        source_uri=source_uri,
    )


def main(argv=None):
    """Main startup function."""
    args = parse_args(argv)
    cfg = config[args.env]()
    logging.basicConfig(level=cfg.LOG_LEVEL, format='%(message)s')

    try:
        if args.xronox:
            run_xronox_mode(cfg, resume=args.resume, validate=args.validate)
        else:
            run_clone_mode(cfg, skip_indexes=args.skip_indexes)
    except CloneAborted as e:
        print(f"{e}.")
        return 0
    except KeyboardInterrupt:
        print("\n❌ Interrupted.")
        return 1
    except Exception as e:
        label = "Xronox migration" if args.xronox else "Cloning"
        print(f"❌ {label} failed: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
