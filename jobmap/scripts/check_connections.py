"""
Infrastructure Check
JobMap

Checks:
- Snowflake connection
- Redis connection (optional; caching is disabled without it)
- Mapbox geocoding token

Run using:
    python -m jobmap.scripts.check_connections
"""

from datetime import datetime, timezone

from jobmap.config import settings


def check_snowflake_connection():
    print("\n🔹 Checking Snowflake connection...")
    try:
        from jobmap.services.snowflake import get_snowflake_connection
        conn = get_snowflake_connection()
        cur = conn.cursor()
        try:
            cur.execute("SELECT CURRENT_USER(), CURRENT_ROLE()")
            user, role = cur.fetchone()
            cur.execute("SELECT COUNT(*) FROM jobs")
            (job_count,) = cur.fetchone()
        finally:
            cur.close()
            conn.close()

        print(f"✅ Snowflake connected (User: {user}, Role: {role}, jobs: {job_count})")
        return True

    except Exception as e:
        print("❌ Snowflake connection failed")
        print(str(e))
        return False


def check_redis_connection():
    print("\n🔹 Checking Redis connection...")
    if not settings.cache_configured:
        print("⚠️ REDIS_URL / REDIS_HOST not set, search caching disabled")
        return True
    try:
        from jobmap.services.cache import CacheService

        cache = CacheService()
        if not cache.set("infra_check_key", "ok", 10).ok:
            raise RuntimeError("SETEX failed")
        value = cache.get("infra_check_key")
        if not (value.ok and value.value == "ok"):
            raise RuntimeError("read-back mismatch")

        print(f"✅ Redis connected ({settings.REDIS_URL or settings.REDIS_HOST})")
        return True

    except Exception as e:
        print("❌ Redis connection failed")
        print(str(e))
        return False


def check_mapbox_token():
    print("\n🔹 Checking Mapbox geocoding...")
    try:
        from jobmap.models.geocode import StructuredAddress
        from jobmap.services.geocode import GeocodeResolver

        resolver = GeocodeResolver()
        try:
            result = resolver.forward(StructuredAddress(city="Phoenix", state="AZ"))
        finally:
            resolver.close()
        if not result.ok:
            raise RuntimeError(f"{result.kind.value}: {result.error}")

        print(f"✅ Mapbox geocoding works (Phoenix, AZ -> {result.value.lat:.4f}, {result.value.lon:.4f})")
        return True

    except Exception as e:
        print("❌ Mapbox geocoding failed")
        print(str(e))
        return False


def main():
    print("🚀 JobMap – Infrastructure Check")
    print(f"🕒 Timestamp: {datetime.now(timezone.utc).isoformat()}")

    results = {
        "snowflake": check_snowflake_connection(),
        "redis": check_redis_connection(),
        "mapbox": check_mapbox_token(),
    }

    print("\n📊 Check Summary")
    for service, passed in results.items():
        status = "✅ PASS" if passed else "❌ FAIL"
        print(f"- {service.capitalize():10s}: {status}")

    if all(results.values()):
        print("\n🎉 All infrastructure checks passed!")
    else:
        print("\n⚠️ Some infrastructure checks failed. See logs above.")


if __name__ == "__main__":
    main()
