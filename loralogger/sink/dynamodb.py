"""
DynamoDB Sink

Writes raw packet records to a DynamoDB table with a 14-day expiry.

Table layout:
    item          (S, partition key) - "raw#" + receive date (YYYY-MM-DD)
    date_or_time  (S, sort key)      - receive time of day (HH:MM:SS.ffffff)
    gateway_id    (S)                - Gateway EUI (hex)
    packet        (S)                - Base64 datagram
    expires       (N)                - Unix expiry time (TTL attribute)

Writes are upserts: an identical key is overwritten, never merged.
"""

import logging
from typing import Any, Optional

import boto3
import botocore.session
from botocore.exceptions import BotoCoreError, ClientError

from .base import Sink, SinkError, PacketRecord


logger = logging.getLogger("loralogger.sink.dynamodb")

UPDATE_EXPRESSION = "set gateway_id = :g, packet = :p, expires = :e"


def create_client(
    region: Optional[str] = None,
    credentials_path: Optional[str] = None,
    credentials_profile: Optional[str] = None,
) -> Any:
    """
    Create a DynamoDB client from a shared credentials file and profile.
    
    Args:
        region: AWS region name
        credentials_path: Path to the shared credentials file
        credentials_profile: Profile within the credentials file
    
    Returns:
        botocore DynamoDB client
    """
    core_session = botocore.session.Session()
    if credentials_path:
        core_session.set_config_variable("credentials_file", credentials_path)
    
    try:
        session = boto3.session.Session(
            botocore_session=core_session,
            profile_name=credentials_profile or None,
            region_name=region or None,
        )
        return session.client("dynamodb")
    except BotoCoreError as e:
        raise SinkError(f"DynamoDB session error: {e}") from e


class DynamoDBSink(Sink):
    """
    TTL store sink backed by DynamoDB.
    
    The client is created once and shared by all worker threads
    (botocore clients are thread-safe).
    
    Usage:
        sink = DynamoDBSink(
            table="lora",
            region="eu-west-2",
            credentials_path="/etc/loralogger/credentials",
            credentials_profile="loralogger",
        )
        sink.write(record)
    """
    
    name = "dynamodb"
    
    def __init__(
        self,
        table: str,
        region: Optional[str] = None,
        credentials_path: Optional[str] = None,
        credentials_profile: Optional[str] = None,
        client: Any = None,
    ):
        """
        Initialize DynamoDB sink.
        
        Args:
            table: Table name
            region: AWS region name
            credentials_path: Shared credentials file
            credentials_profile: Credentials profile
            client: Pre-built DynamoDB client (skips session set-up)
        """
        self._table = table
        self._client = client or create_client(
            region=region,
            credentials_path=credentials_path,
            credentials_profile=credentials_profile,
        )
    
    @property
    def table(self) -> str:
        return self._table
    
    def build_request(self, record: PacketRecord) -> dict:
        """Build UpdateItem parameters for a record."""
        return {
            "TableName": self._table,
            "Key": {
                "item": {"S": record.partition_key},
                "date_or_time": {"S": record.sort_key},
            },
            "UpdateExpression": UPDATE_EXPRESSION,
            "ExpressionAttributeValues": {
                ":g": {"S": record.gateway_id},
                ":p": {"S": record.data_base64},
                ":e": {"N": str(record.expires)},
            },
            "ReturnValues": "UPDATED_NEW",
        }
    
    def write(self, record: PacketRecord) -> None:
        """Upsert a record into the table."""
        try:
            self._client.update_item(**self.build_request(record))
        except (BotoCoreError, ClientError) as e:
            raise SinkError(f"DynamoDB error: {e}") from e
        
        logger.debug(
            f"Stored packet gateway_id={record.gateway_id} "
            f"item={record.partition_key} date_or_time={record.sort_key}"
        )
    
    def close(self) -> None:
        """Close the client's connection pool."""
        close = getattr(self._client, "close", None)
        if close is not None:
            close()
