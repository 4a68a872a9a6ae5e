"""Create the episodes table without running Alembic migrations.

Intended for local SQLite setups; PostgreSQL deployments should run
`alembic upgrade head` instead.
"""

import argparse
import logging
import os
import sys

# Adjust path to import from the project root
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))
from podcast_transcribe.config import Config
from podcast_transcribe.db.factory import create_repository

# Setup basic logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def initialize_database(config: Config) -> None:
    """
    Connects to the database and creates all tables defined in the models.
    """
    repository = create_repository(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        echo=config.DB_ECHO,
        create_tables=True,
    )
    repository.close()
    logging.info("Database initialization complete. All tables created successfully.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Initialize the database. Creates tables if they don't exist.")
    parser.add_argument("--yes", "-y", action="store_true", help="Bypass confirmation prompt.")
    parser.add_argument("--env-file", help="Path to a custom .env file", default=None)
    args = parser.parse_args()

    config = Config(env_file=args.env_file)
    logging.info(f"Using database: {config.DATABASE_URL.split('@')[-1]}")

    if not args.yes:
        confirm = input("Initialize the database? This will create tables but not delete existing data. (y/n): ")
        if confirm.lower() != 'y':
            logging.info("Database initialization cancelled by user.")
            sys.exit(0)

    try:
        initialize_database(config)
    except Exception:
        logging.exception("An error occurred during database initialization.")
        sys.exit(1)
