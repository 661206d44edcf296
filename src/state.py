"""
State Manager - PostgreSQL persistence of observed resource state.

Stores one row per managed instance: its local ID and the flat model last
observed in the cluster, keyed by kind and configuration address.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import asyncpg

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS resource_instances (
    id SERIAL PRIMARY KEY,
    kind VARCHAR(255) NOT NULL,
    address VARCHAR(255) NOT NULL,
    local_id VARCHAR(512),
    model JSONB NOT NULL DEFAULT '{}',
    status VARCHAR(32) NOT NULL,
    status_message TEXT,
    created_at TIMESTAMP NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMP NOT NULL DEFAULT NOW(),
    UNIQUE (kind, address)
)
"""


class StateManager:
    """Manages persisted instance state in PostgreSQL."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_pool_size: int = 1,
        max_pool_size: int = 5,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Establish connection pool to PostgreSQL."""
        self.pool = await asyncpg.create_pool(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            min_size=self.min_pool_size,
            max_size=self.max_pool_size,
            command_timeout=60,
        )
        logger.info(
            f"Connected to PostgreSQL (pool: {self.min_pool_size}-{self.max_pool_size})"
        )

    async def close(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            logger.info("Closed PostgreSQL connection")

    def _ensure_connected(self) -> None:
        if self.pool is None:
            raise RuntimeError(
                "Database not connected. Call connect() before performing operations."
            )

    async def initialize_schema(self) -> None:
        """Create the state table if it does not exist."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("State schema initialized")

    async def save_instance(
        self,
        kind: str,
        address: str,
        local_id: Optional[str],
        model: Dict[str, Any],
        status: str,
        status_message: Optional[str] = None,
    ) -> int:
        """
        Insert or update the state of an instance.

        Args:
            kind: Resource kind name (e.g., 'priority_class')
            address: Address of the instance in the configuration
            local_id: Local ID in the cluster, None when absent
            model: Flat model values as observed
            status: Lifecycle state value
            status_message: Optional human readable message

        Returns:
            The row ID
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            row_id = await conn.fetchval(
                """
                INSERT INTO resource_instances (
                    kind, address, local_id, model, status, status_message
                )
                VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (kind, address) DO UPDATE
                SET local_id = EXCLUDED.local_id,
                    model = EXCLUDED.model,
                    status = EXCLUDED.status,
                    status_message = EXCLUDED.status_message,
                    updated_at = NOW()
                RETURNING id
                """,
                kind,
                address,
                local_id,
                json.dumps(model),
                status,
                status_message,
            )
            logger.info(f"Saved state for {kind}.{address} ({status})")
            return row_id

    async def get_instance(self, kind: str, address: str) -> Optional[Dict[str, Any]]:
        """Get the state of an instance by kind and address."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM resource_instances WHERE kind = $1 AND address = $2",
                kind,
                address,
            )
            if not row:
                return None
            return self._parse_instance_row(row)

    async def list_instances(
        self, kind: Optional[str] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        """List instance states with an optional kind filter."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            query = "SELECT * FROM resource_instances WHERE 1=1"
            params: List[Any] = []
            param_count = 0

            if kind:
                param_count += 1
                query += f" AND kind = ${param_count}"
                params.append(kind)

            param_count += 1
            query += f" ORDER BY kind, address LIMIT ${param_count}"
            params.append(limit)

            rows = await conn.fetch(query, *params)
            return [self._parse_instance_row(row) for row in rows]

    async def delete_instance(self, kind: str, address: str) -> bool:
        """Forget an instance. Returns False if it was not tracked."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM resource_instances WHERE kind = $1 AND address = $2",
                kind,
                address,
            )
            deleted = result == "DELETE 1"
            if deleted:
                logger.info(f"Removed state for {kind}.{address}")
            return deleted

    def _parse_instance_row(self, row: asyncpg.Record) -> Dict[str, Any]:
        """Parse a resource_instances row from the database."""
        result = dict(row)
        model = result.get("model")
        if isinstance(model, str):
            result["model"] = json.loads(model) if model else {}
        elif model is None:
            result["model"] = {}
        return result
