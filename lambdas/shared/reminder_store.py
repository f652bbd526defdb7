# lambdas/shared/reminder_store.py
from datetime import datetime, timezone
from typing import List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from lambdas.shared.models import Reminder
from lambdas.shared.run_logger import RunLogger


class ReminderStoreError(Exception):
    """A DynamoDB call against the reminders table failed."""


def _error_message(e: Exception) -> str:
    if isinstance(e, ClientError):
        return e.response.get('Error', {}).get('Message', str(e))
    return str(e)


class ReminderStore:
    """
    Reminder rows in a DynamoDB table with `post_id` as partition key.
    Rows are never deleted; `completed` only ever moves to True.
    """

    def __init__(self, table, logger: Optional[RunLogger] = None):
        self.table = table
        self.logger = logger or RunLogger()

    @classmethod
    def from_settings(cls, settings, logger: Optional[RunLogger] = None) -> "ReminderStore":
        dynamodb = boto3.resource('dynamodb', region_name=settings.aws_region)
        return cls(dynamodb.Table(settings.reminder_table_name), logger)

    def upsert(self, reminder: Reminder) -> None:
        try:
            self.table.put_item(Item=reminder.to_item())
        except (BotoCoreError, ClientError) as e:
            raise ReminderStoreError(_error_message(e)) from e

    def get(self, post_id: str) -> Optional[Reminder]:
        try:
            response = self.table.get_item(Key={'post_id': post_id})
        except (BotoCoreError, ClientError) as e:
            raise ReminderStoreError(_error_message(e)) from e
        item = response.get('Item')
        return Reminder.from_item(item) if item else None

    def _parse_rows(self, items: List[dict]) -> List[Reminder]:
        """Rows that cannot be read as a reminder are logged and left out."""
        reminders: List[Reminder] = []
        for item in items:
            try:
                reminders.append(Reminder.from_item(item))
            except (KeyError, TypeError, ValueError) as e:
                self.logger.error(f"Skipping unreadable reminder row {item.get('post_id')!r}: {e}")
        return reminders

    def list_open(self) -> List[Reminder]:
        """Every reminder whose `completed` flag is missing, NULL or false."""
        open_filter = (
            Attr('completed').not_exists()
            | Attr('completed').attribute_type('NULL')
            | Attr('completed').eq(False)
        )
        reminders: List[Reminder] = []
        scan_kwargs = {'FilterExpression': open_filter}
        try:
            while True:
                response = self.table.scan(**scan_kwargs)
                reminders.extend(self._parse_rows(response.get('Items', [])))
                last_key = response.get('LastEvaluatedKey')
                if not last_key:
                    break
                scan_kwargs['ExclusiveStartKey'] = last_key
        except (BotoCoreError, ClientError) as e:
            raise ReminderStoreError(_error_message(e)) from e
        return reminders

    def mark_completed(self, post_id: str) -> None:
        try:
            self.table.update_item(
                Key={'post_id': post_id},
                UpdateExpression='SET completed = :done, updated_at = :now',
                ExpressionAttributeValues={
                    ':done': True,
                    ':now': datetime.now(timezone.utc).isoformat(),
                },
            )
        except (BotoCoreError, ClientError) as e:
            raise ReminderStoreError(_error_message(e)) from e
