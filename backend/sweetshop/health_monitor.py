"""
Standalone health monitor: polls the API, Postgres and Redis and logs the result.

    python -m sweetshop.health_monitor
"""
import logging
import os
import time
from typing import Callable, Dict, Tuple

import psycopg2
import redis
import requests

from sweetshop import config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("HealthMonitor")

API_URL = os.getenv("SWEETSHOP_API_URL", "http://backend:8000")
CHECK_INTERVAL = int(os.getenv("HEALTH_CHECK_INTERVAL", "60"))
STARTUP_DELAY = int(os.getenv("HEALTH_CHECK_STARTUP_DELAY", "15"))


def check_http_service(name: str, url: str, timeout: float = 5.0) -> Tuple[bool, str]:
    try:
        resp = requests.get(url, timeout=timeout)
        if resp.ok:
            return True, f"{name}: OK ({resp.status_code})"
        return False, f"{name}: FAIL ({resp.status_code})"
    except requests.RequestException as e:
        return False, f"{name}: ERROR ({e})"


def check_api() -> Tuple[bool, str]:
    return check_http_service("api /health", f"{API_URL}/health")


def check_catalog() -> Tuple[bool, str]:
    return check_http_service("api /v1/user/listCategories", f"{API_URL}/v1/user/listCategories")


def check_database() -> Tuple[bool, str]:
    try:
        conn = psycopg2.connect(config.DATABASE_URL.replace("+psycopg2", ""))
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        finally:
            conn.close()
        return True, "postgres: OK"
    except psycopg2.Error as e:
        return False, f"postgres: ERROR ({e})"


def check_redis() -> Tuple[bool, str]:
    try:
        r = redis.Redis(host=config.REDIS_HOST, port=config.REDIS_PORT, decode_responses=True,
                        socket_connect_timeout=5)
        r.ping()
        return True, "redis: OK"
    except redis.RedisError as e:
        return False, f"redis: ERROR ({e})"


CHECKS: Dict[str, Callable[[], Tuple[bool, str]]] = {
    "api": check_api,
    "catalog": check_catalog,
    "database": check_database,
    "redis": check_redis,
}


def monitor_all_services(checks: Dict[str, Callable[[], Tuple[bool, str]]] = None) -> Dict[str, bool]:
    results: Dict[str, bool] = {}
    logger.info("=" * 60)
    logger.info("Health check results:")

    for name, func in (checks or CHECKS).items():
        ok, message = func()
        results[name] = ok
        if ok:
            logger.info("[OK ] %s", message)
        else:
            logger.warning("[FAIL] %s", message)

    logger.info("=" * 60)
    return results


def run_forever():
    logger.info("Health monitor started, first check in %d seconds", STARTUP_DELAY)
    time.sleep(STARTUP_DELAY)

    while True:
        try:
            monitor_all_services()
        except Exception:
            logger.exception("Error during monitoring")
        logger.info("Next check in %d seconds...", CHECK_INTERVAL)
        time.sleep(CHECK_INTERVAL)


if __name__ == "__main__":
    run_forever()
