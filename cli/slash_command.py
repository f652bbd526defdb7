import os
import sys
import requests
from dotenv import load_dotenv

# Load environment variables from a .env file for local testing
load_dotenv()

# Function URLs of the deployed slash-command lambdas, keyed by command name
ENDPOINT_VARS = {
    "reminder": ("REMINDER_API", "MATTERMOST_SLASH_REMINDER_TOKEN"),
    "reminder-mentors": ("REMINDER_MENTORS_API", "MATTERMOST_SLASH_TOKEN"),
    "reminder-stop": ("REMINDER_STOP_API", "MATTERMOST_SLASH_STOP_TOKEN"),
}

def build_slash_payload(token: str, text: str, channel_id: str, command: str = "reminder") -> dict:
    """
    Builds the form fields Mattermost sends for an outgoing slash command.
    """
    return {
        "token": token,
        "text": text,
        "channel_id": channel_id,
        "command": f"/{command}",
    }

def send_slash_command(endpoint: str, payload: dict):
    """
    Posts the form-encoded payload to a slash-command endpoint and prints the reply.
    """
    if not endpoint:
        print("❌ ERROR: endpoint URL not set. Please create a .env file.")
        return None

    print(f"--- Sending {payload['command']} {payload['text']} ---")

    try:
        # requests form-encodes a dict passed as data, like Mattermost does
        response = requests.post(endpoint, data=payload, timeout=10)
        response.raise_for_status()
        print("\n✅ Success! Slash command accepted.")
        print(f"Status Code: {response.status_code}")
        print(f"Response Text: {response.json().get('text')}")
        return response

    except requests.exceptions.RequestException as e:
        print(f"\n❌ Failed to send slash command.")
        print(f"Error: {e}")
        return None

if __name__ == "__main__":
    print("--- Reminder Slash Command CLI ---")

    if len(sys.argv) < 3 or sys.argv[1] not in ENDPOINT_VARS:
        print("Usage: python cli/slash_command.py <reminder|reminder-mentors|reminder-stop> \"<text>\"")
        sys.exit(1)

    command, text = sys.argv[1], " ".join(sys.argv[2:])
    endpoint_var, token_var = ENDPOINT_VARS[command]

    payload = build_slash_payload(
        token=os.environ.get(token_var, ""),
        text=text,
        channel_id=os.environ.get("TEST_CHANNEL_ID", ""),
        command=command,
    )
    send_slash_command(os.environ.get(endpoint_var), payload)
