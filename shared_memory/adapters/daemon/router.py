"""Request routing for the daemon.

Turns a decoded Request into a call against the shared embedder and the
vector store for the request's backend, and turns the outcome into a
Response. Every failure becomes an error response; nothing raised here
reaches the connection handler.
"""

import logging
import os
from collections.abc import Callable
from enum import Enum
from typing import Any

from shared_memory.adapters.daemon.protocol import Request, Response
from shared_memory.adapters.daemon.resource_cache import ResourceCache
from shared_memory.adapters.daemon.warm_embedder import WarmEmbedder
from shared_memory.core.memory_service import DEFAULT_DAYS, DEFAULT_LIMIT, MemoryService
from shared_memory.domain.config import BackendDefaults
from shared_memory.domain.entities import BackendConfig
from shared_memory.domain.exceptions import (
    MemoryServiceError,
    UnknownMethod,
    ValidationError,
)

logger = logging.getLogger(__name__)

INTERNAL_ERROR = -32000


class Method(str, Enum):
    """Methods served by the daemon."""

    STORE = "store"
    SEARCH = "search"
    LIST_RECENT = "list_recent"
    UPDATE = "update"
    DELETE = "delete"
    GET_CONFIG = "get_config"
    PING = "ping"


# Tool-style names used by agent adapters
METHOD_ALIASES: dict[str, Method] = {
    "store_memory": Method.STORE,
    "search_memory": Method.SEARCH,
    "update_memory": Method.UPDATE,
    "delete_memory": Method.DELETE,
}

def resolve_method(name: str) -> Method:
    """Map a wire method name to a Method.

    Raises:
        UnknownMethod: If the name is neither a method nor an alias.
    """
    if name in METHOD_ALIASES:
        return METHOD_ALIASES[name]
    try:
        return Method(name)
    except ValueError:
        raise UnknownMethod(f"Unknown method: {name}") from None


def backend_config_from_params(params: dict[str, Any]) -> BackendConfig:
    """Build the BackendConfig named by a request's params.

    Raises:
        ValidationError: If the URL or collection name is missing.
    """
    endpoint = params.get("qdrantUrl")
    namespace = params.get("collectionName")
    credential = params.get("qdrantApiKey") or None
    if not isinstance(endpoint, str) or not endpoint:
        raise ValidationError("'qdrantUrl' is required")
    if not isinstance(namespace, str) or not namespace:
        raise ValidationError("'collectionName' is required")
    if credential is not None and not isinstance(credential, str):
        raise ValidationError("'qdrantApiKey' must be a string")
    return BackendConfig(endpoint=endpoint, credential=credential, namespace=namespace)


def _optional_str(params: dict[str, Any], name: str) -> str | None:
    value = params.get(name)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"'{name}' must be a string")
    return value


class RequestRouter:
    """Dispatches requests to the memory service for the right backend."""

    def __init__(
        self,
        embedder: WarmEmbedder,
        cache: ResourceCache,
        defaults: BackendDefaults | None = None,
        idle_timeout: int = 0,
    ):
        """Initialize the router.

        Args:
            embedder: Process-wide embedder shared by all requests
            cache: Backend client cache shared by all connections
            defaults: Labels used when a request carries no context params
            idle_timeout: Reported by get_config
        """
        self.embedder = embedder
        self.cache = cache
        self.defaults = defaults or BackendDefaults()
        self.idle_timeout = idle_timeout

        self._handlers: dict[Method, Callable[[dict[str, Any]], Any]] = {
            Method.STORE: self._handle_store,
            Method.SEARCH: self._handle_search,
            Method.LIST_RECENT: self._handle_list_recent,
            Method.UPDATE: self._handle_update,
            Method.DELETE: self._handle_delete,
            Method.GET_CONFIG: self._handle_get_config,
            Method.PING: self._handle_ping,
        }

    def dispatch(self, request: Request) -> Response:
        """Handle a request and build exactly one response for it.

        Args:
            request: Decoded request

        Returns:
            Response with result or error, carrying the request's id
        """
        try:
            method = resolve_method(request.method)
            result = self._handlers[method](request.params)
            return Response.success(result, request_id=request.id)
        except MemoryServiceError as e:
            logger.info(f"{request.method} failed: {e.message}")
            return Response.failure(code=e.code, message=e.message, request_id=request.id)
        except Exception as e:
            logger.exception(f"Error handling {request.method}: {e}")
            return Response.failure(
                code=INTERNAL_ERROR, message=f"Internal error: {e}", request_id=request.id
            )

    def _service(self, params: dict[str, Any]) -> MemoryService:
        config = backend_config_from_params(params)
        cached = self.cache.resolve(config)
        return MemoryService(
            embedder=self.embedder,
            store=cached.store,
            default_agent=_optional_str(params, "defaultAgent") or self.defaults.default_agent,
            default_project=(
                _optional_str(params, "defaultProject") or self.defaults.default_project
            ),
        )

    def _handle_store(self, params: dict[str, Any]) -> dict[str, Any]:
        service = self._service(params)
        memory_id = service.store_memory(
            text=params.get("text"),
            agent=_optional_str(params, "agent"),
            project=_optional_str(params, "project"),
            tags=params.get("tags"),
        )
        return {"id": memory_id}

    def _handle_search(self, params: dict[str, Any]) -> dict[str, Any]:
        service = self._service(params)
        results = service.search(
            query=params.get("query"),
            limit=params.get("limit") or DEFAULT_LIMIT,
            agent=_optional_str(params, "agent"),
            project=_optional_str(params, "project"),
            tags=params.get("tags"),
        )
        return {"results": [r.to_dict() for r in results]}

    def _handle_list_recent(self, params: dict[str, Any]) -> dict[str, Any]:
        service = self._service(params)
        results = service.list_recent(
            limit=params.get("limit") or DEFAULT_LIMIT,
            days=params.get("days") or DEFAULT_DAYS,
            project=_optional_str(params, "project"),
        )
        return {"results": [r.to_dict() for r in results]}

    def _handle_update(self, params: dict[str, Any]) -> dict[str, Any]:
        service = self._service(params)
        service.update(
            memory_id=params.get("id"),
            text=params.get("text"),
            project=_optional_str(params, "project"),
        )
        return {"success": True}

    def _handle_delete(self, params: dict[str, Any]) -> dict[str, Any]:
        service = self._service(params)
        service.delete(params.get("id"))
        return {"success": True}

    def _handle_get_config(self, params: dict[str, Any]) -> dict[str, Any]:
        return {
            "qdrantUrl": params.get("qdrantUrl") or self.defaults.qdrant_url,
            "collectionName": params.get("collectionName") or self.defaults.collection_name,
            "defaultAgent": params.get("defaultAgent") or self.defaults.default_agent,
            "defaultProject": params.get("defaultProject") or self.defaults.default_project,
            "model": self.embedder.name,
            "dimension": self.embedder.dim,
            "modelReady": self.embedder.ready,
            "idleTimeout": self.idle_timeout,
        }

    def _handle_ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"pong": True, "modelReady": self.embedder.ready, "pid": os.getpid()}
