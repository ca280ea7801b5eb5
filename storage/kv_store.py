"""Persistent key-value backends for locally saved state (drafts)."""
import contextlib
import logging
from typing import Optional
from urllib.parse import urlparse

from sqlalchemy import Column, Integer, String, Text, TIMESTAMP, create_engine, func, select
from sqlalchemy.orm import declarative_base, sessionmaker

try:
    from redis import Redis
    REDIS_AVAILABLE = True
except ImportError:
    REDIS_AVAILABLE = False
    Redis = None

from core.config_loader import StorageConfig
from core.interfaces import KeyValueStore
from storage.memory import InMemoryKeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_URL = "sqlite:///swapwatch.db"
DEFAULT_REDIS_URL = "redis://localhost:6379/0"

Base = declarative_base()


class LocalSetting(Base):
    __tablename__ = 'local_settings'

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(255), unique=True, nullable=False, index=True)
    value = Column(Text)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


def _sanitize_url(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            sanitized = parsed._replace(
                netloc=f"{parsed.username or ''}:*@{parsed.hostname}:{parsed.port or 6379}"
            )
            return sanitized.geturl()
        return url
    except Exception:
        return url


class SqlKeyValueStore(KeyValueStore):
    """
    Key-value store on a single SQL table (SQLite by default).

    The table is created on first use.
    """

    def __init__(self, url: str = DEFAULT_SQLITE_URL, engine=None):
        self.engine = engine or create_engine(url)
        Base.metadata.create_all(self.engine)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    @contextlib.contextmanager
    def _session_scope(self):
        """Provide a transactional scope around a series of operations."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, key: str) -> Optional[str]:
        with self._session_scope() as session:
            row = session.execute(
                select(LocalSetting).where(LocalSetting.key == key)
            ).scalar_one_or_none()
            return row.value if row else None

    def set(self, key: str, value: str) -> None:
        with self._session_scope() as session:
            row = session.execute(
                select(LocalSetting).where(LocalSetting.key == key)
            ).scalar_one_or_none()
            if row:
                row.value = value
            else:
                session.add(LocalSetting(key=key, value=value))

    def remove(self, key: str) -> None:
        with self._session_scope() as session:
            row = session.execute(
                select(LocalSetting).where(LocalSetting.key == key)
            ).scalar_one_or_none()
            if row:
                session.delete(row)


class RedisKeyValueStore(KeyValueStore):
    """
    Key-value store on Redis.

    If Redis is unreachable the store reports itself unavailable: reads
    return None and writes are dropped with a warning.
    """

    def __init__(
        self,
        redis_url: str = DEFAULT_REDIS_URL,
        password: Optional[str] = None,
        key_namespace: str = "swapwatch:"
    ):
        self.redis_url = redis_url
        self.key_namespace = key_namespace
        self._redis: Optional[Redis] = None
        self._available = False

        if REDIS_AVAILABLE:
            try:
                self._redis = Redis.from_url(
                    redis_url,
                    password=password,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5
                )
                self._redis.ping()
                self._available = True
                logger.info(f"Key-value store connected to Redis at {_sanitize_url(redis_url)}")
            except Exception as e:
                logger.warning(f"Key-value store Redis unavailable: {e}")
                self._redis = None
                self._available = False
        else:
            logger.warning("Redis not installed, key-value store disabled")

    @property
    def is_available(self) -> bool:
        return self._available and self._redis is not None

    def _make_key(self, key: str) -> str:
        return f"{self.key_namespace}{key}"

    def get(self, key: str) -> Optional[str]:
        if not self.is_available:
            return None
        try:
            return self._redis.get(self._make_key(key))
        except Exception as e:
            logger.warning(f"Error reading {key} from Redis: {e}")
            return None

    def set(self, key: str, value: str) -> None:
        if not self.is_available:
            logger.warning(f"Dropping write of {key}: Redis unavailable")
            return
        self._redis.set(self._make_key(key), value)

    def remove(self, key: str) -> None:
        if not self.is_available:
            return
        self._redis.delete(self._make_key(key))


def build_kv_store(config: StorageConfig) -> KeyValueStore:
    """Instantiate the configured key-value backend."""
    if config.backend == "sqlite":
        return SqlKeyValueStore(config.url or DEFAULT_SQLITE_URL)
    if config.backend == "redis":
        return RedisKeyValueStore(config.url or DEFAULT_REDIS_URL, password=config.redis_password)
    return InMemoryKeyValueStore()
