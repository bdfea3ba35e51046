import logging
import redis
from pydantic import ValidationError
from models.experiments import Experiment
from config import config

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
EXPERIMENT_CACHE_TTL = 300  # experiment definitions rarely change while reports run

# --- Valkey/Redis Backend Implementations ---

class _MockValkeyBackend:
    """Simulates the low-level Valkey/Redis client (in-memory)."""
    def __init__(self):
        self._cache = {}

    def get(self, key: str) -> str | None:
        logger.debug("cache mock get: %s", key)
        return self._cache.get(key)

    def set(self, key: str, value: str, ex: int):
        # expiration is ignored in memory
        logger.debug("cache mock set: %s", key)
        self._cache[key] = value

    def delete(self, key: str):
        self._cache.pop(key, None)

class RealValkeyBackend:
    """Real implementation using redis-py client (compatible with Valkey)."""
    def __init__(self, host: str, port: int, db: int = 0, password: str | None = None):
        try:
            self.client = redis.Redis(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=True,
                socket_timeout=2.0
            )
            self.client.ping()
        except redis.RedisError as e:
            logger.error("Failed to connect to Valkey/Redis: %s", e)
            raise

    def get(self, key: str) -> str | None:
        try:
            logger.debug("cache valkey get: %s", key)
            return self.client.get(key)
        except redis.RedisError as e:
            logger.error("Valkey GET error for key %s: %s", key, e)
            return None

    def set(self, key: str, value: str, ex: int):
        try:
            logger.debug("cache valkey set: %s", key)
            self.client.set(key, value, ex=ex)
        except redis.RedisError as e:
            logger.error("Valkey SET error for key %s: %s", key, e)

    def delete(self, key: str):
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.error("Valkey DEL error for key %s: %s", key, e)


# --- Dedicated Cache Client Class ---

class CacheClient:
    """High-level client caching experiment definitions for report jobs."""

    def __init__(self, backend):
        self.backend = backend
        logger.debug("CacheClient backend: %s", self.backend)

    @staticmethod
    def _experiment_key(experiment_id: str) -> str:
        return f"exp:{experiment_id}"

    def get_experiment(self, experiment_id: str) -> Experiment | None:
        json_str = self.backend.get(self._experiment_key(experiment_id))
        if not json_str:
            return None

        try:
            return Experiment.model_validate_json(json_str)
        except ValidationError as e:
            # stale entry written by an older schema, treat as a miss
            logger.warning("Dropping unreadable cached experiment %s: %s", experiment_id, e)
            self.backend.delete(self._experiment_key(experiment_id))
            return None

    def set_experiment(self, experiment: Experiment):
        self.backend.set(self._experiment_key(experiment.id), experiment.to_json(), ex=EXPERIMENT_CACHE_TTL)
        logger.debug("Experiment %s cached.", experiment.id)

    def invalidate_experiment(self, experiment_id: str):
        self.backend.delete(self._experiment_key(experiment_id))

# --- Initialize Backend and Default Client ---
valkey_host = config.valkey_host
valkey_port = config.valkey_port

logger.info("valkey_host: %s, port: %d", valkey_host, valkey_port)

if valkey_host:
    try:
        VALKEY_BACKEND = RealValkeyBackend(host=valkey_host, port=valkey_port)
    except redis.RedisError:
        logger.info("Falling back to Mock Valkey Backend due to connection failure.")
        VALKEY_BACKEND = _MockValkeyBackend()
else:
    logger.info("VALKEY_HOST not set. Using Mock Valkey Backend.")
    VALKEY_BACKEND = _MockValkeyBackend()

# Initialize a default client (singleton)
_DEFAULT_CACHE_CLIENT = CacheClient(backend=VALKEY_BACKEND)

def get_cache_client():
    return _DEFAULT_CACHE_CLIENT

def get_mock_cache_client():
    return CacheClient(backend=_MockValkeyBackend())
