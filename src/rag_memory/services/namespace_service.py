"""Namespace generations: get-or-create, compatibility lookup, promotion."""

from __future__ import annotations

import time
import uuid
from collections.abc import Sequence
from dataclasses import replace

from rag_memory.core.constants import STATUS_READY, VECTOR_DIMENSIONS
from rag_memory.core.exceptions import NotFoundException, ValidationException
from rag_memory.core.logging import get_logger
from rag_memory.core.models import Namespace, NamespaceStatus, Page
from rag_memory.repositories.record_store import RecordStore
from rag_memory.services.filters import validate_filter_names

logger = get_logger(__name__)


def is_compatible(
    namespace: Namespace,
    *,
    model_id: str,
    dimension: int,
    filter_names: Sequence[str] | None,
) -> bool:
    """Same model and dimension; same filter names in the same order unless ``None``."""
    if namespace.model_id != model_id or namespace.dimension != dimension:
        return False
    return filter_names is None or namespace.filter_names == tuple(filter_names)


class NamespaceService:
    """Manages immutable, versioned namespace generations."""

    def __init__(self, store: RecordStore):
        self._store = store

    async def get_or_create(
        self,
        name: str,
        *,
        status: NamespaceStatus,
        model_id: str,
        dimension: int,
        filter_names: Sequence[str] = (),
    ) -> Namespace:
        """Reuse the newest version with ``status`` if its schema matches.

        Otherwise create the next version (one past the highest existing
        version, or 0) with the requested schema. Older versions are never
        modified.

        Args:
            name: Logical namespace name.
            status: Status the namespace must have (and is created with).
            model_id: Embedding model identifier.
            dimension: Embedding dimension; must have a vector table.
            filter_names: Ordered filter schema.

        Returns:
            The reused or newly created namespace.
        """
        if not name:
            raise ValidationException("Namespace name must not be empty")
        if not model_id:
            raise ValidationException("model_id must not be empty")
        if dimension not in VECTOR_DIMENSIONS:
            raise ValidationException(
                f"Unsupported embedding dimension {dimension}; expected one of {list(VECTOR_DIMENSIONS)}"
            )
        names = validate_filter_names(filter_names)

        async with self._store.transaction():
            versions = await self._store.list_namespace_versions(name)
            for existing in versions:
                if existing.status != status:
                    continue
                if is_compatible(existing, model_id=model_id, dimension=dimension, filter_names=names):
                    logger.debug("Reusing namespace %s v%d", name, existing.version)
                    return existing
                break

            version = versions[0].version + 1 if versions else 0
            namespace = Namespace(
                id=uuid.uuid4().hex,
                name=name,
                version=version,
                model_id=model_id,
                dimension=dimension,
                filter_names=names,
                status=status,
                created_at=time.time(),
            )
            await self._store.insert_namespace(namespace)

        logger.info(
            "Created namespace %s v%d (model=%s, dimension=%d, filters=%s, status=%s)",
            name,
            version,
            model_id,
            dimension,
            list(names),
            status,
        )
        return namespace

    async def get(self, namespace_id: str) -> Namespace | None:
        return await self._store.get_namespace(namespace_id)

    async def get_compatible_namespace(
        self,
        name: str,
        *,
        model_id: str,
        dimension: int,
        filter_names: Sequence[str] | None = None,
    ) -> Namespace | None:
        """Newest ready version compatible with the schema, or ``None``.

        ``filter_names=None`` accepts any filter schema.
        """
        for namespace in await self._store.list_namespace_versions(name):
            if namespace.status != STATUS_READY:
                continue
            if is_compatible(
                namespace, model_id=model_id, dimension=dimension, filter_names=filter_names
            ):
                return namespace
        return None

    async def promote_to_ready(self, namespace_id: str) -> Namespace:
        """Flip a pending namespace to ready; a ready one is returned unchanged."""
        async with self._store.transaction():
            namespace = await self._store.get_namespace(namespace_id)
            if namespace is None:
                raise NotFoundException(f"Namespace {namespace_id} not found")
            if namespace.status == STATUS_READY:
                return namespace
            promoted = replace(namespace, status=STATUS_READY)
            await self._store.update_namespace(promoted)

        logger.info("Namespace %s v%d is ready", promoted.name, promoted.version)
        return promoted

    async def list(
        self,
        *,
        status: NamespaceStatus | None = None,
        cursor: str | None = None,
        limit: int = 100,
    ) -> Page[Namespace]:
        """Namespaces newest first."""
        return await self._store.list_namespaces(status=status, cursor=cursor, limit=limit)


__all__ = ["NamespaceService", "is_compatible"]
