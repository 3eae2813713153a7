import asyncio
import asyncpg

from poultry_backend.app.core.config import settings

# asyncpg connect needs the DSN without the SQLAlchemy driver suffix
db_url = settings.database_url.replace("+asyncpg", "")

print(f"Testing connection to: {db_url}")


async def check_db():
    try:
        conn = await asyncpg.connect(db_url)
        print("✅ Connection Successful!")
        await conn.close()
        exit(0)
    except (OSError, asyncpg.PostgresError) as e:
        print(f"❌ Connection Failed: {e}")
        exit(1)


if __name__ == "__main__":
    asyncio.run(check_db())
