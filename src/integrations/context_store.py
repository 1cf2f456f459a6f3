"""
DynamoDB conversation store.

Table layout: partition key ``thread_id`` (S), sort key ``message_unix_time``
(N, milliseconds), plus ``message_source`` and ``message`` attributes.
"""

from __future__ import annotations

import asyncio
import time

from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from core.constants import Settings
from models.conversation import Turn
from models.error_models import ContextStoreError
from utils.logger import ChatLogger

# Same-millisecond appends collide on the sort key; the later one moves forward
MAX_APPEND_COLLISIONS = 5


class DynamoContextStore:
    """Append-only per-thread turn log backed by DynamoDB."""

    def __init__(self, settings: Settings, logger: ChatLogger, table: Any = None):
        self.settings = settings
        self.logger = logger
        self._table: Any = table

    def _get_table(self) -> Any:
        """Lazy-initialize the boto3 table resource."""
        if self._table is None:
            import boto3

            resource_kwargs: dict[str, Any] = {
                "service_name": "dynamodb",
                "region_name": self.settings.aws_region,
            }
            if self.settings.dynamodb_endpoint:
                resource_kwargs["endpoint_url"] = self.settings.dynamodb_endpoint

            self._table = boto3.resource(**resource_kwargs).Table(self.settings.conversation_table)
        return self._table

    async def get_thread(self, thread_id: str) -> list[Turn]:
        """Load the oldest ``context_history_limit`` turns of a thread, oldest first."""
        from boto3.dynamodb.conditions import Key

        table = self._get_table()
        now_ms = int(time.time() * 1000)
        condition = Key("thread_id").eq(thread_id) & Key("message_unix_time").lte(now_ms)

        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: table.query(
                    KeyConditionExpression=condition,
                    ScanIndexForward=True,
                    Limit=self.settings.context_history_limit,
                ),
            )
        except (BotoCoreError, ClientError) as e:
            raise ContextStoreError(f"failed to load thread {thread_id}: {e}") from e

        return [
            Turn(
                source_identity=str(item.get("message_source", "")),
                content=str(item.get("message", "")),
                timestamp=int(item["message_unix_time"]),
            )
            for item in response.get("Items", [])
        ]

    async def append_turn(self, thread_id: str, source_identity: str, content: str) -> None:
        table = self._get_table()
        timestamp = int(time.time() * 1000)
        loop = asyncio.get_running_loop()

        for _ in range(MAX_APPEND_COLLISIONS):
            item = {
                "thread_id": thread_id,
                "message_unix_time": timestamp,
                "message_source": source_identity,
                "message": content,
            }
            try:
                await loop.run_in_executor(
                    None,
                    lambda item=item: table.put_item(  # type: ignore[misc]
                        Item=item,
                        ConditionExpression="attribute_not_exists(message_unix_time)",
                    ),
                )
                return
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") != "ConditionalCheckFailedException":
                    raise ContextStoreError(f"failed to record conversation message: {e}") from e
                timestamp += 1
            except BotoCoreError as e:
                raise ContextStoreError(f"failed to record conversation message: {e}") from e

        raise ContextStoreError(f"failed to record conversation message: sort key collisions on thread {thread_id}")
