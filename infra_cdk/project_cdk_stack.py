# infra_cdk/project_cdk_stack.py
from aws_cdk import (
    Stack,
    Duration,
    CfnParameter,
    RemovalPolicy,
    aws_dynamodb as dynamodb,
    aws_events as events,
    aws_events_targets as targets,
    aws_lambda as _lambda,
    aws_s3 as s3,
    aws_cloudfront as cloudfront,
    aws_cloudfront_origins as origins,
    CfnOutput
)
from constructs import Construct

# construct id -> (handler path, function URL output name or None for schedule-only)
FUNCTIONS = {
    "SlashReminderFunction": ("lambdas.slash_reminder.app.handler", "SlashReminderUrl"),
    "SlashReminderMentorsFunction": ("lambdas.slash_reminder_mentors.app.handler", "SlashReminderMentorsUrl"),
    "ReminderStopFunction": ("lambdas.reminder_stop.app.handler", "ReminderStopUrl"),
    "ChannelSummaryFunction": ("lambdas.channel_summary.app.handler", "ChannelSummaryUrl"),
    "ReminderCronFunction": ("lambdas.reminder_cron.app.handler", None),
}

# Secrets are passed as NoEcho parameters and land in the function environment
SECRET_PARAMETERS = [
    "MATTERMOST_BOT_TOKEN",
    "MATTERMOST_SLASH_REMINDER_TOKEN",
    "MATTERMOST_SLASH_TOKEN",
    "MATTERMOST_SLASH_STOP_TOKEN",
    "TRIGGER_TOKEN",
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
]

PLAIN_PARAMETERS = [
    "MATTERMOST_URL",
    "MATTERMOST_MAIN_TEAM",
    "MATTERMOST_SUMMARY_CHANNEL",
    "MATTERMOST_MENTOR_GROUP_ID",
    "AUDIO_JOB_API_URL",
    "VOICEVOX_API_URL",
]

class ProjectStack(Stack):

    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # === Parameters for Deployment ===
        environment = {}
        for name in SECRET_PARAMETERS:
            param = CfnParameter(self, name.replace("_", ""), type="String", no_echo=True,
                description=f"Value of {name} for the lambdas.")
            environment[name] = param.value_as_string

        for name in PLAIN_PARAMETERS:
            param = CfnParameter(self, name.replace("_", ""), type="String", default="",
                description=f"Value of {name} for the lambdas.")
            environment[name] = param.value_as_string

        # === Storage ===
        reminders_table = dynamodb.Table(self, "RemindersTable",
            partition_key=dynamodb.Attribute(name="post_id", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=RemovalPolicy.RETAIN,
        )

        audio_bucket = s3.Bucket(self, "AudioBucket",
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            removal_policy=RemovalPolicy.DESTROY,
            auto_delete_objects=True,
        )

        # Audio links posted to chat resolve through this distribution (AUDIO_PUBLIC_BASE_URL)
        audio_oai = cloudfront.OriginAccessIdentity(self, "AudioOAI")
        audio_bucket.grant_read(audio_oai)
        audio_distribution = cloudfront.Distribution(self, "AudioDistribution",
            default_behavior=cloudfront.BehaviorOptions(
                origin=origins.S3Origin(audio_bucket, origin_access_identity=audio_oai),
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS
            )
        )

        environment["REMINDER_TABLE_NAME"] = reminders_table.table_name
        environment["AUDIO_BUCKET"] = audio_bucket.bucket_name
        environment["AUDIO_PUBLIC_BASE_URL"] = f"https://{audio_distribution.distribution_domain_name}"

        # === Define a Shared Lambda Layer ===
        common_layer = _lambda.LayerVersion(self, "CommonLayer",
            code=_lambda.Code.from_asset("lambda_layer"),
            compatible_runtimes=[_lambda.Runtime.PYTHON_3_12],
            description="Third-party dependencies shared by the lambdas"
        )

        # === Functions ===
        functions = {}
        for construct_id_, (handler, output_name) in FUNCTIONS.items():
            fn = _lambda.Function(self, construct_id_,
                runtime=_lambda.Runtime.PYTHON_3_12,
                code=_lambda.Code.from_asset(".", exclude=["cdk.out", "tests", "cli", ".venv", "lambda_layer"]),
                handler=handler,
                timeout=Duration.minutes(10) if construct_id_ == "ChannelSummaryFunction" else Duration.seconds(60),
                memory_size=1024 if construct_id_ == "ChannelSummaryFunction" else 256,
                environment=environment,
                layers=[common_layer]
            )
            if output_name:
                url = fn.add_function_url(auth_type=_lambda.FunctionUrlAuthType.NONE)
                CfnOutput(self, output_name, value=url.url)
            functions[construct_id_] = fn

        reminders_table.grant_read_write_data(functions["SlashReminderFunction"])
        reminders_table.grant_read_write_data(functions["SlashReminderMentorsFunction"])
        reminders_table.grant_read_write_data(functions["ReminderStopFunction"])
        reminders_table.grant_read_write_data(functions["ReminderCronFunction"])
        audio_bucket.grant_read_write(functions["ChannelSummaryFunction"])

        # === Schedules ===
        # 00:00 UTC is 09:00 JST
        events.Rule(self, "ReminderCronSchedule",
            schedule=events.Schedule.cron(minute="0", hour="0"),
            targets=[targets.LambdaFunction(functions["ReminderCronFunction"])]
        )
        events.Rule(self, "ChannelSummarySchedule",
            schedule=events.Schedule.cron(minute="0", hour="23"),
            targets=[targets.LambdaFunction(functions["ChannelSummaryFunction"])]
        )

        # === Outputs ===
        CfnOutput(self, "RemindersTableName", value=reminders_table.table_name)
        CfnOutput(self, "AudioBucketName", value=audio_bucket.bucket_name)
        CfnOutput(self, "AudioBaseUrl", value=f"https://{audio_distribution.distribution_domain_name}")
