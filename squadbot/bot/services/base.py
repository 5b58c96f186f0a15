"""Base class for services backed by the Redis store."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from squadbot.bot.services.exceptions import ServiceError
from squadbot.bot.services.exceptions import StoreUnavailableError


class RedisService:
    """Shared plumbing for the squad services.

    Holds the injected Redis client and translates client exceptions into
    the service exception hierarchy.
    """

    def __init__(self, redis_client: redis.Redis, service_name: str):
        self._redis = redis_client
        self._service_name = service_name
        self._logger = logging.getLogger(f"squadbot.services.{service_name}")

    def _log_operation(self, operation: str, **context: Any) -> None:
        details = ", ".join(f"{key}={value}" for key, value in context.items())
        self._logger.debug(f"{self._service_name}.{operation}({details})")

    def _log_error(self, operation: str, error: Exception, **context: Any) -> None:
        details = ", ".join(f"{key}={value}" for key, value in context.items())
        self._logger.error(
            f"{self._service_name}.{operation} failed ({details}): "
            f"{type(error).__name__}: {error}"
        )

    @asynccontextmanager
    async def _store_call(self, operation: str, **context: Any) -> AsyncIterator[None]:
        """Run a block of store commands, mapping Redis failures.

        Raises:
            StoreUnavailableError: On connection or timeout failures
            ServiceError: On any other Redis error
        """
        self._log_operation(operation, **context)
        try:
            yield
        except ServiceError:
            raise
        except (RedisConnectionError, RedisTimeoutError) as e:
            self._log_error(operation, e, **context)
            raise StoreUnavailableError(operation, e) from e
        except RedisError as e:
            self._log_error(operation, e, **context)
            raise ServiceError(f"Failed to {operation}: {e}") from e
