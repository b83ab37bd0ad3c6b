"""
Check PostgreSQL and Redis reachability for the authentication service.
Run once before starting the app: python scripts/init_postgres.py

Requires: PostgreSQL installed and running. Create user and database:

  sudo -u postgres psql
  CREATE USER authservice WITH PASSWORD 'authservice';
  CREATE DATABASE authservice_db OWNER authservice;
  GRANT ALL PRIVILEGES ON DATABASE authservice_db TO authservice;
  \q
"""

import sys
from pathlib import Path

# Add repository root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from redis import Redis
from sqlalchemy import create_engine, text
from authservice.config import settings


def check_postgres() -> bool:
    url = settings.get_database_url()
    if not url.startswith("postgresql"):
        print("Database URL is not PostgreSQL. Skipping.")
        return True
    try:
        engine = create_engine(url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("PostgreSQL connection OK. Database exists.")
        return True
    except Exception as e:
        print(f"Cannot connect to PostgreSQL: {e}")
        print("\nCreate database first:")
        print("  psql -U postgres -c \"CREATE USER authservice WITH PASSWORD 'authservice';\"")
        print("  psql -U postgres -c \"CREATE DATABASE authservice_db OWNER authservice;\"")
        print("  psql -U postgres -c \"GRANT ALL PRIVILEGES ON DATABASE authservice_db TO authservice;\"")
        return False


def check_redis() -> bool:
    client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        client.ping()
        print("Redis connection OK.")
        return True
    except Exception as e:
        print(f"Cannot connect to Redis at {settings.REDIS_URL}: {e}")
        return False
    finally:
        client.close()


def main():
    ok = check_postgres()
    ok = check_redis() and ok
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
