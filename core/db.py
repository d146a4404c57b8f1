"""
Database abstraction layer: one SQL dialect in, two engines out.

Application code writes MySQL-flavoured SQL (``?`` placeholders, backtick
identifiers, ``NOW()`` and friends). The configured dialect translates it
and runs it on its own connection pool. NOT an ORM.

Usage:
    from core.db import DatabaseAdapter, create_dialect

    adapter = DatabaseAdapter.from_settings(get_settings().database)
    await adapter.connect()
    rows = await adapter.query("SELECT * FROM `company_employees` WHERE employee_id = ?", (1,))

Translation is purely textual: a ``?`` inside a string literal or a backtick
inside an identifier is rewritten like any other.
"""

import asyncio
import itertools
import logging
import queue
import re
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional, Sequence

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from core.errors import DatabaseError

logger = logging.getLogger(__name__)

_HISTORY_SIZE = 100
_QUERY_HISTORY_SIZE = 1000

# Health report thresholds
_MAX_ERROR_RATE = 0.10
_MAX_SLOW_RATE = 0.20
_MAX_AVG_RESPONSE_MS = 500
_MAX_POOL_USAGE = 0.80


class QueryResult(list):
    """Rows (dicts) returned by a statement, plus cursor metadata."""

    def __init__(self, rows=(), rowcount: int = -1, lastrowid: Any = None):
        super().__init__(rows)
        self.rowcount = rowcount
        self.lastrowid = lastrowid


def _normalize_sql(sql: str) -> str:
    return re.sub(r"\s+", " ", sql).strip()


def _format_uptime(seconds: float) -> str:
    hours, remainder = divmod(int(seconds), 3600)
    return f"{hours}h {remainder // 60}m"


def _to_format_style(sql: str) -> str:
    """Rewrite ``?`` placeholders for drivers using the ``%s`` paramstyle."""
    return sql.replace("%", "%%").replace("?", "%s")


# =============================================================================
# Dialects
# =============================================================================

class Dialect(ABC):
    """
    A database engine: SQL translation plus a pool of blocking connections.

    Blocking driver calls run in worker threads, bounded by a semaphore of
    the pool size so no more than pool_size threads hold connections.
    """

    name = "generic"

    def __init__(self, host: str, port: int, user: str, password: str, database: str,
                 pool_size: int = 20, connect_timeout: int = 10):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.pool_size = pool_size
        self.connect_timeout = connect_timeout
        self._semaphore = asyncio.Semaphore(pool_size)
        self._in_use = 0
        self._waiting = 0

    @abstractmethod
    def translate(self, sql: str) -> str:
        """Rewrite source-dialect SQL for this engine."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    @abstractmethod
    def _open_pool(self) -> None:
        ...

    @abstractmethod
    def _close_pool(self) -> None:
        ...

    @abstractmethod
    def _execute_sync(self, sql: str, params: tuple) -> QueryResult:
        """Run already-translated SQL on a pooled connection."""

    async def open(self):
        await asyncio.to_thread(self._open_pool)
        logger.info(f"{self.name} pool opened ({self.host}:{self.port}/{self.database}, max {self.pool_size})")

    async def close(self):
        await asyncio.to_thread(self._close_pool)
        logger.info(f"{self.name} pool closed")

    async def execute(self, sql: str, params: Sequence = ()) -> QueryResult:
        """Translate and run one statement."""
        translated = self.translate(sql)
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1
        self._in_use += 1
        try:
            return await asyncio.to_thread(self._execute_sync, translated, tuple(params))
        finally:
            self._in_use -= 1
            self._semaphore.release()

    def pool_stats(self) -> Optional[dict]:
        if not self.is_open:
            return None
        return {
            "dialect": self.name,
            "max_connections": self.pool_size,
            "in_use": self._in_use,
            "waiting": self._waiting,
        }


class MySqlDialect(Dialect):
    """Source dialect on PyMySQL. translate() is the identity."""

    name = "mysql"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._pool: Optional[queue.Queue] = None
        self._lock = threading.Lock()
        self._created = 0

    def translate(self, sql: str) -> str:
        return sql

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def _connect(self):
        import pymysql
        import pymysql.cursors

        conn = pymysql.connect(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            database=self.database,
            connect_timeout=self.connect_timeout,
            charset="utf8mb4",
            autocommit=True,
            cursorclass=pymysql.cursors.DictCursor,
        )
        with self._lock:
            self._created += 1
        return conn

    def _open_pool(self):
        self._pool = queue.Queue(maxsize=self.pool_size)
        # Fail fast on bad credentials or an unreachable host
        self._release(self._connect())

    def _close_pool(self):
        pool, self._pool = self._pool, None
        while pool is not None and not pool.empty():
            conn = pool.get_nowait()
            try:
                conn.close()
            except Exception as e:
                logger.debug(f"Error closing mysql connection: {e}")
            with self._lock:
                self._created -= 1

    def _acquire(self):
        try:
            conn = self._pool.get_nowait()
        except queue.Empty:
            return self._connect()
        # Stale connection: ping reconnects in place
        try:
            conn.ping(reconnect=True)
        except Exception as e:
            logger.warning(f"Discarding dead mysql connection: {e}")
            self._discard(conn)
            return self._connect()
        return conn

    def _release(self, conn):
        if self._pool is None:
            self._discard(conn)
            return
        try:
            self._pool.put_nowait(conn)
        except queue.Full:
            self._discard(conn)

    def _discard(self, conn):
        try:
            conn.close()
        except Exception as e:
            logger.debug(f"Error discarding mysql connection: {e}")
        with self._lock:
            self._created -= 1

    def _execute_sync(self, sql: str, params: tuple) -> QueryResult:
        import pymysql

        conn = self._acquire()
        try:
            with conn.cursor() as cursor:
                cursor.execute(_to_format_style(sql), params)
                rows = cursor.fetchall() if cursor.description else []
                result = QueryResult(rows, rowcount=cursor.rowcount, lastrowid=cursor.lastrowid)
        except pymysql.err.OperationalError:
            self._discard(conn)
            raise
        except Exception:
            self._release(conn)
            raise
        self._release(conn)
        return result

    def pool_stats(self) -> Optional[dict]:
        stats = super().pool_stats()
        if stats is not None:
            stats["open_connections"] = self._created
            stats["idle_connections"] = self._pool.qsize()
        return stats


# Function rewrites applied after placeholders and identifiers, in order
_PG_REWRITES = [
    (re.compile(r"\bAUTO_INCREMENT\b", re.IGNORECASE), "SERIAL"),
    (re.compile(r"\bNOW\(\)", re.IGNORECASE), "CURRENT_TIMESTAMP"),
    (re.compile(r"\bCURDATE\(\)", re.IGNORECASE), "CURRENT_DATE"),
    (re.compile(r"\bCURTIME\(\)", re.IGNORECASE), "CURRENT_TIME"),
    (re.compile(r"\bUUID\(\)", re.IGNORECASE), "gen_random_uuid()"),
    (re.compile(r"\bUNIX_TIMESTAMP\(\)", re.IGNORECASE), "EXTRACT(EPOCH FROM CURRENT_TIMESTAMP)"),
]

_PG_PLACEHOLDER_RE = re.compile(r"\$(\d+)")


class PostgresDialect(Dialect):
    """PostgreSQL on a psycopg2 ThreadedConnectionPool."""

    name = "postgresql"

    def __init__(self, *args, min_connections: int = 2, statement_timeout: int = 30000,
                 idle_in_transaction_timeout: int = 60000,
                 application_name: str = "abe_garage_app", **kwargs):
        super().__init__(*args, **kwargs)
        self.min_connections = min_connections
        self.statement_timeout = statement_timeout
        self.idle_in_transaction_timeout = idle_in_transaction_timeout
        self.application_name = application_name
        self._pool = None

    def translate(self, sql: str) -> str:
        """
        Rewrite MySQL-flavoured SQL for PostgreSQL.

        ``?`` becomes ``$1..$n`` in order of appearance, backticks become
        double quotes, then MySQL functions are mapped case-insensitively.
        """
        counter = itertools.count(1)
        pg_sql = re.sub(r"\?", lambda _: f"${next(counter)}", sql)
        pg_sql = pg_sql.replace("`", '"')
        for pattern, replacement in _PG_REWRITES:
            pg_sql = pattern.sub(replacement, pg_sql)
        return pg_sql

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def _open_pool(self):
        import psycopg2.pool

        self._pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=self.min_connections,
            maxconn=self.pool_size,
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            dbname=self.database,
            connect_timeout=self.connect_timeout,
            application_name=self.application_name,
            options=(
                f"-c statement_timeout={self.statement_timeout} "
                f"-c idle_in_transaction_session_timeout={self.idle_in_transaction_timeout}"
            ),
        )

    def _close_pool(self):
        pool, self._pool = self._pool, None
        if pool is not None:
            pool.closeall()

    @staticmethod
    def _bind(sql: str, params: tuple) -> tuple[str, tuple]:
        """Map ``$n`` placeholders onto psycopg2's ``%s`` with reordered params."""
        order = []

        def _sub(match):
            order.append(int(match.group(1)) - 1)
            return "%s"

        bound_sql = _PG_PLACEHOLDER_RE.sub(_sub, sql.replace("%", "%%"))
        return bound_sql, tuple(params[i] for i in order)

    def _execute_sync(self, sql: str, params: tuple) -> QueryResult:
        import psycopg2
        import psycopg2.extras

        bound_sql, bound_params = self._bind(sql, params)
        conn = self._pool.getconn()
        broken = False
        try:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(bound_sql, bound_params)
                rows = [dict(r) for r in cursor.fetchall()] if cursor.description else []
                result = QueryResult(rows, rowcount=cursor.rowcount)
            conn.commit()
            return result
        except psycopg2.OperationalError:
            broken = True
            raise
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn, close=broken)

    def pool_stats(self) -> Optional[dict]:
        stats = super().pool_stats()
        if stats is not None:
            stats["min_connections"] = self.min_connections
        return stats


_DIALECTS = {
    "mysql": MySqlDialect,
    "postgresql": PostgresDialect,
    "postgres": PostgresDialect,
}


def create_dialect(settings) -> Dialect:
    """
    Build the dialect named by settings.db_type.

    Args:
        settings: DatabaseSettings (or anything with the same attributes)

    Raises:
        ValueError: Unknown database type
    """
    db_type = (settings.db_type or "").lower()
    dialect_cls = _DIALECTS.get(db_type)
    if dialect_cls is None:
        raise ValueError(f"Unsupported database type: {settings.db_type!r} (expected mysql or postgresql)")

    password = settings.db_pass
    if hasattr(password, "get_secret_value"):
        password = password.get_secret_value()

    kwargs = dict(
        host=settings.db_host,
        port=settings.db_port,
        user=settings.db_user,
        password=password,
        database=settings.db_name,
        pool_size=settings.db_pool_size,
        connect_timeout=settings.db_connect_timeout,
    )
    if dialect_cls is PostgresDialect:
        kwargs.update(
            min_connections=settings.db_pool_min,
            statement_timeout=settings.db_statement_timeout,
            idle_in_transaction_timeout=settings.db_idle_in_transaction_timeout,
            application_name=settings.db_application_name,
        )
    return dialect_cls(**kwargs)


# =============================================================================
# Adapter
# =============================================================================

@dataclass
class QueryStats:
    """Running counters for one adapter. Times in milliseconds."""
    total_queries: int = 0
    slow_queries: int = 0
    failed_queries: int = 0
    avg_response_time: float = 0.0

    def record(self, duration_ms: float, failed: bool = False, slow: bool = False):
        """Fold one attempt into the counters. Synchronous, so never interleaved."""
        self.total_queries += 1
        self.avg_response_time += (duration_ms - self.avg_response_time) / self.total_queries
        if failed:
            self.failed_queries += 1
        elif slow:
            self.slow_queries += 1

    def reset(self):
        self.total_queries = 0
        self.slow_queries = 0
        self.failed_queries = 0
        self.avg_response_time = 0.0


async def _backoff_sleep(seconds: float):
    await asyncio.sleep(seconds)


class DatabaseAdapter:
    """
    Retrying, instrumented front door to a Dialect.

    Every attempt is timed, counted and kept in a bounded query history;
    slow and failed attempts are also logged and kept in their own histories.
    The connection flag follows the outcome of the latest attempt.
    """

    def __init__(
        self,
        dialect: Dialect,
        slow_query_threshold: int = 1000,
        retries: int = 3,
        retry_base_delay: float = 2.0,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.dialect = dialect
        self._timer = timer
        self.slow_query_threshold = slow_query_threshold
        self.retries = retries
        self.retry_base_delay = retry_base_delay
        self.is_connected = False
        self._stats = QueryStats()
        self._slow_queries: deque = deque(maxlen=_HISTORY_SIZE)
        self._failed_queries: deque = deque(maxlen=_HISTORY_SIZE)
        self._history: deque = deque(maxlen=_QUERY_HISTORY_SIZE)
        self._started_at = time.monotonic()

    @classmethod
    def from_settings(cls, settings) -> "DatabaseAdapter":
        return cls(
            create_dialect(settings),
            slow_query_threshold=settings.slow_query_threshold,
            retries=settings.db_query_retries,
            retry_base_delay=settings.db_retry_base_delay,
        )

    # ----- lifecycle ------------------------------------------------------------

    async def connect(self) -> bool:
        """Open the pool and verify it with a test query."""
        if not self.dialect.is_open:
            await self.dialect.open()
        self.is_connected = await self.test_connection()
        return self.is_connected

    async def close(self):
        if self.dialect.is_open:
            await self.dialect.close()
        self.is_connected = False

    async def reconnect(self) -> bool:
        logger.info("Attempting to reconnect to database...")
        try:
            await self.close()
            return await self.connect()
        except Exception as e:
            logger.error(f"Database reconnection failed: {e}")
            self.is_connected = False
            return False

    # ----- queries --------------------------------------------------------------

    async def query(self, sql: str, params: Sequence = (), retries: Optional[int] = None) -> QueryResult:
        """
        Run a source-dialect statement with retries.

        Args:
            sql: MySQL-flavoured SQL with ``?`` placeholders
            params: Positional parameters
            retries: Total attempts (defaults to the adapter setting)

        Returns:
            QueryResult of dict rows

        Raises:
            DatabaseError: All attempts failed
        """
        attempts = retries if retries is not None else self.retries
        params = tuple(params)

        def _log_retry(retry_state):
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.info(f"Retrying query in {delay:.1f}s (attempt {retry_state.attempt_number + 1}/{attempts})")

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=self.retry_base_delay),
            sleep=_backoff_sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._attempt(sql, params, attempt.retry_state.attempt_number)
        except Exception as e:
            raise DatabaseError(
                f"Query failed after {attempts} attempt(s): {e}",
                sql=sql,
                params=params,
                dialect=self.dialect.name,
                pool_stats=self.get_pool_stats(),
                query_stats=self.get_query_stats(),
            ) from e

    async def _attempt(self, sql: str, params: tuple, attempt_number: int) -> QueryResult:
        start = self._timer()
        try:
            if not self.dialect.is_open:
                await self.dialect.open()
            result = await self.dialect.execute(sql, params)
        except Exception as e:
            duration_ms = (self._timer() - start) * 1000
            self.is_connected = False
            self._stats.record(duration_ms, failed=True)
            entry = {
                "sql": _normalize_sql(sql),
                "params": list(params),
                "error": str(e),
                "attempt": attempt_number,
                "duration_ms": round(duration_ms, 2),
                "timestamp": time.time(),
            }
            self._failed_queries.append(entry)
            self._history.append({**entry, "is_error": True, "is_slow": False})
            logger.error(
                f"Database query error (attempt {attempt_number}): {e}",
                extra={"sql": _normalize_sql(sql), "dialect": self.dialect.name},
            )
            raise

        duration_ms = (self._timer() - start) * 1000
        self.is_connected = True
        slow = duration_ms > self.slow_query_threshold
        self._stats.record(duration_ms, slow=slow)
        entry = {
            "sql": _normalize_sql(sql),
            "params": list(params),
            "duration_ms": round(duration_ms, 2),
            "timestamp": time.time(),
        }
        self._history.append({**entry, "is_error": False, "is_slow": slow})
        if slow:
            self._slow_queries.append(entry)
            logger.warning(
                f"Slow query detected: {entry['duration_ms']}ms",
                extra={"sql": entry["sql"], "params": entry["params"]},
            )
        return result

    # ----- health ---------------------------------------------------------------

    async def test_connection(self) -> bool:
        """Run ``SELECT 1 AS test`` once. Never raises."""
        try:
            rows = await self.query("SELECT 1 AS test", retries=1)
        except DatabaseError as e:
            logger.error(f"{self.dialect.name} connection test failed: {e.__cause__}")
            return False
        ok = len(rows) > 0
        if ok:
            logger.info(f"{self.dialect.name} connection test successful")
        return ok

    async def check_health(self) -> bool:
        """Single health probe; reconnects on failure."""
        was_connected = self.is_connected
        try:
            await self.query("SELECT 1 AS health_check", retries=1)
        except DatabaseError:
            logger.warning("Database health check failed")
            self.is_connected = False
            return await self.reconnect()

        self.is_connected = True
        if not was_connected:
            logger.info("Database connection restored")
        return True

    # ----- stats ----------------------------------------------------------------

    def get_pool_stats(self) -> Optional[dict]:
        try:
            return self.dialect.pool_stats()
        except Exception as e:
            logger.error(f"Error getting pool stats: {e}")
            return {"error": "Unable to retrieve pool statistics", "dialect": self.dialect.name}

    def get_query_stats(self) -> dict:
        stats = asdict(self._stats)
        stats["avg_response_time"] = round(stats["avg_response_time"], 2)
        stats["slow_query_threshold"] = self.slow_query_threshold
        return stats

    def reset_query_stats(self):
        self._stats.reset()
        self._slow_queries.clear()
        self._failed_queries.clear()
        self._history.clear()
        logger.info("Query statistics reset")

    def get_slow_queries(self, limit: int = 20) -> list[dict]:
        return list(self._slow_queries)[-limit:][::-1] if limit > 0 else []

    def get_failed_queries(self, limit: int = 20) -> list[dict]:
        return list(self._failed_queries)[-limit:][::-1] if limit > 0 else []

    def get_query_history(self, limit: int = 50) -> list[dict]:
        """Most recent attempts first, successes and failures alike."""
        return list(self._history)[-limit:][::-1] if limit > 0 else []

    def get_uptime(self) -> float:
        """Seconds since the adapter was created."""
        return time.monotonic() - self._started_at

    def get_health_report(self) -> dict:
        """
        Score the adapter from its counters and suggest fixes.

        Starts at 100 and deducts for a high error rate (30), a high slow
        query rate (20), a high average response time (15) and a busy pool
        (10). Any deduction marks the report ``degraded``; below 50 it is
        ``critical``.
        """
        stats = self.get_query_stats()
        pool = self.get_pool_stats() or {}
        total = stats["total_queries"]
        error_rate = stats["failed_queries"] / total if total else 0.0
        slow_rate = stats["slow_queries"] / total if total else 0.0
        avg = stats["avg_response_time"]
        max_connections = pool.get("max_connections") or 0
        pool_usage = pool.get("in_use", 0) / max_connections if max_connections else 0.0

        score = 100
        issues = []
        recommendations = []
        if error_rate > _MAX_ERROR_RATE:
            score -= 30
            issues.append(f"High error rate: {error_rate * 100:.2f}%")
            recommendations.append({
                "priority": "high",
                "category": "reliability",
                "message": "High query error rate detected. Review database connection stability and query syntax.",
                "action": "Check database logs and connection pool configuration",
            })
        if slow_rate > _MAX_SLOW_RATE:
            score -= 20
            issues.append(f"High slow query rate: {slow_rate * 100:.2f}%")
            recommendations.append({
                "priority": "high",
                "category": "performance",
                "message": "High slow query rate detected. Consider query optimization and indexing.",
                "action": "Analyze slow queries and add appropriate database indexes",
            })
        if avg > _MAX_AVG_RESPONSE_MS:
            score -= 15
            issues.append(f"High average response time: {round(avg)}ms")
            recommendations.append({
                "priority": "medium",
                "category": "performance",
                "message": "High average response time. Consider query optimization or caching.",
                "action": "Implement query caching and optimize complex queries",
            })
        if pool_usage > _MAX_POOL_USAGE:
            score -= 10
            issues.append(f"High connection pool usage: {pool_usage * 100:.2f}%")
            recommendations.append({
                "priority": "medium",
                "category": "capacity",
                "message": "High connection pool usage. Consider increasing the pool size.",
                "action": "Raise DB_POOL_SIZE or shorten long-running transactions",
            })

        if score < 50:
            status = "critical"
        elif issues:
            status = "degraded"
        else:
            status = "healthy"

        uptime = self.get_uptime()
        return {
            "summary": {
                "status": status,
                "score": score,
                "uptime_seconds": round(uptime, 1),
                "uptime": _format_uptime(uptime),
                "total_queries": total,
                "avg_response_time": f"{round(avg)}ms",
            },
            "query_stats": stats,
            "pool_stats": pool or None,
            "issues": issues,
            "recommendations": recommendations,
        }

    def get_connection_status(self) -> dict:
        return {
            "is_connected": self.is_connected,
            "dialect": self.dialect.name,
            "host": self.dialect.host,
            "database": self.dialect.database,
            "pool_stats": self.get_pool_stats(),
            "query_stats": self.get_query_stats(),
        }

    def log_performance_stats(self):
        stats = self.get_query_stats()
        logger.info(
            f"Database performance: {stats['total_queries']} queries, "
            f"{stats['slow_queries']} slow, {stats['failed_queries']} failed, "
            f"avg {stats['avg_response_time']}ms",
            extra={"query_stats": stats, "pool_stats": self.get_pool_stats()},
        )
