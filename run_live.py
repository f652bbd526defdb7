# mattermost-reminders/run_live.py
import json
import boto3
from botocore.exceptions import ClientError

# Import the cron handler and settings
from lambdas.reminder_cron.app import handler
from lambdas.shared.settings import get_settings

def setup_dynamodb_table():
    """Checks for and creates the reminders DynamoDB table if it doesn't exist."""
    settings = get_settings()
    dynamodb = boto3.resource('dynamodb', region_name=settings.aws_region)

    table_name = settings.reminder_table_name
    try:
        dynamodb.meta.client.describe_table(TableName=table_name)
        print(f"DynamoDB table '{table_name}' already exists.")
    except ClientError as e:
        if e.response['Error']['Code'] == 'ResourceNotFoundException':
            print(f"DynamoDB table '{table_name}' not found. Creating it now...")
            dynamodb.create_table(
                TableName=table_name,
                KeySchema=[{'AttributeName': 'post_id', 'KeyType': 'HASH'}],
                AttributeDefinitions=[{'AttributeName': 'post_id', 'AttributeType': 'S'}],
                BillingMode='PAY_PER_REQUEST'
            )
            dynamodb.Table(table_name).wait_until_exists()
            print(f"Table '{table_name}' created successfully.")
        else: raise e

def run_live():
    """Executes the reminder_cron Lambda handler using your live AWS credentials and Mattermost server."""
    print("--- Starting LIVE Run of reminder_cron Lambda ---")

    try:
        setup_dynamodb_table()
    except Exception as e:
        print(f"Could not complete setup. Aborting run. Error: {e}")
        return

    try:
        # In production, this event comes from the EventBridge schedule.
        scheduled_event = {"source": "aws.events", "detail-type": "Scheduled Event"}

        print("\n--- Invoking Lambda handler (this will call Mattermost and DynamoDB) ---")
        result = handler(scheduled_event, {})
        print("--- Lambda handler execution finished ---")

        print("\n--- Final JSON Output from Lambda: ---")
        final_output = json.loads(result['body'])
        print(json.dumps(final_output, indent=2, ensure_ascii=False))

        if result['statusCode'] == 200:
            print(f"\n Success! Checked {final_output.get('checked', 0)} open reminders in '{get_settings().reminder_table_name}'.")
    except Exception as e:
        print(f"\n An unexpected error occurred during the run: {e}")


if __name__ == "__main__":
    run_live()
