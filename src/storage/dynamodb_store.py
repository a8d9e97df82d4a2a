from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from src.storage.dataset_store import (
    AlreadyExists,
    BackendError,
    DatasetRecord,
    NotFound,
    Ok,
    StoreOutcome,
)


def _is_conditional_check_failed(exc: Exception) -> bool:
    if not isinstance(exc, ClientError):
        return False
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


def _to_dynamo(value: Any) -> Any:
    # The resource layer rejects Python floats; numbers must travel as Decimal.
    if value is None:
        return None
    return json.loads(json.dumps(value), parse_float=Decimal)


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    return value


def _item_to_record(item: dict[str, Any]) -> DatasetRecord:
    meta = _from_dynamo(item.get("meta"))
    return DatasetRecord(
        key_id=str(item["keyId"]),
        version=int(item["version"]),
        payload=str(item["payload"]),
        meta=meta if isinstance(meta, dict) else None,
        updated_at=str(item["updatedAt"]),
    )


class DynamoDBStore:
    """DynamoDB-backed dataset store (single table, hash key `keyId`).

    All conditional semantics are delegated to DynamoDB ConditionExpressions;
    `ConditionalCheckFailedException` is translated to NotFound/AlreadyExists.
    """

    def __init__(
        self,
        table_name: str,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        table: Any | None = None,
    ) -> None:
        self.table_name = table_name
        if table is None:
            resource = boto3.resource(
                "dynamodb",
                region_name=region,
                endpoint_url=endpoint_url,
                config=Config(retries={"max_attempts": 3, "mode": "standard"}),
            )
            table = resource.Table(table_name)
        self._table = table

    def describe(self) -> str:
        return "dynamodb"

    def close(self) -> None:
        return None

    def put_new(self, record: DatasetRecord) -> StoreOutcome:
        try:
            self._table.put_item(
                Item={
                    "keyId": record.key_id,
                    "version": int(record.version),
                    "payload": record.payload,
                    "meta": _to_dynamo(record.meta),
                    "updatedAt": record.updated_at,
                },
                ConditionExpression="attribute_not_exists(keyId)",
            )
        except ClientError as e:
            if _is_conditional_check_failed(e):
                return AlreadyExists(key_id=record.key_id)
            return BackendError(error=e, operation="put_new")
        except BotoCoreError as e:
            return BackendError(error=e, operation="put_new")
        return Ok(record=record)

    def get(self, key_id: str) -> StoreOutcome:
        try:
            resp = self._table.get_item(Key={"keyId": key_id})
        except (ClientError, BotoCoreError) as e:
            return BackendError(error=e, operation="get")
        item = resp.get("Item")
        if not item:
            return NotFound(key_id=key_id)
        return Ok(record=_item_to_record(item))

    def update_existing(
        self, key_id: str, *, payload: str, meta: dict[str, Any] | None, updated_at: str
    ) -> StoreOutcome:
        try:
            resp = self._table.update_item(
                Key={"keyId": key_id},
                UpdateExpression=(
                    "SET #version = #version + :inc, #payload = :payload, #meta = :meta, #updatedAt = :updatedAt"
                ),
                ExpressionAttributeNames={
                    "#version": "version",
                    "#payload": "payload",
                    "#meta": "meta",
                    "#updatedAt": "updatedAt",
                },
                ExpressionAttributeValues={
                    ":inc": 1,
                    ":payload": payload,
                    ":meta": _to_dynamo(meta),
                    ":updatedAt": updated_at,
                },
                ConditionExpression="attribute_exists(keyId)",
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if _is_conditional_check_failed(e):
                return NotFound(key_id=key_id)
            return BackendError(error=e, operation="update_existing")
        except BotoCoreError as e:
            return BackendError(error=e, operation="update_existing")
        return Ok(record=_item_to_record(resp["Attributes"]))

    def delete_existing(self, key_id: str) -> StoreOutcome:
        try:
            self._table.delete_item(
                Key={"keyId": key_id},
                ConditionExpression="attribute_exists(keyId)",
            )
        except ClientError as e:
            if _is_conditional_check_failed(e):
                return NotFound(key_id=key_id)
            return BackendError(error=e, operation="delete_existing")
        except BotoCoreError as e:
            return BackendError(error=e, operation="delete_existing")
        return Ok()
