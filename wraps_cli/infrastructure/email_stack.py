"""
Pulumi program for the Wraps email stack.

Resources are only created for the features an `EmailConfig` switches on:

- IAM role the application assumes to send mail (plus a Vercel OIDC provider
  when deploying for Vercel)
- SES configuration set, EventBridge event destination, domain identity and
  custom MAIL FROM domain
- SQS queue with dead-letter queue, fed by an EventBridge rule
- DynamoDB history table and the Lambda that writes events into it

Stack exports: roleArn, configSetName, tableName, region, lambdaFunctions,
domain, dkimTokens, customTrackingDomain, mailFromDomain, archivingEnabled,
archiveRetention.
"""
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pulumi
import pulumi_aws as aws

from ..email.config import ALL_EVENT_TYPES, EmailConfig, retention_days

RESOURCE_PREFIX = "wraps-email"
MANAGED_TAGS = {"ManagedBy": "wraps-cli"}

CONFIG_SET_NAME = f"{RESOURCE_PREFIX}-tracking"
HISTORY_TABLE_NAME = f"{RESOURCE_PREFIX}-history"
EVENTS_QUEUE_NAME = f"{RESOURCE_PREFIX}-events"
EVENT_PROCESSOR_NAME = f"{RESOURCE_PREFIX}-event-processor"
DEFAULT_HISTORY_DAYS = 90

VERCEL_OIDC_THUMBPRINTS = [
    "20032e77eca0785eece16b56b42c9b330b906320",
    "696db3af0dffc17e65c6a20d925c5a7bd24dec7e",
]

LAMBDA_SOURCE = Path(__file__).parent / "lambda_src" / "event_processor.py"


@dataclass
class VercelConfig:
    team_slug: str
    project_name: str

    @classmethod
    def from_provider_config(cls, provider_config: Optional[Dict[str, Any]]) -> Optional["VercelConfig"]:
        if not provider_config or not provider_config.get("teamSlug"):
            return None
        return cls(team_slug=provider_config["teamSlug"], project_name=provider_config.get("projectName", ""))

    def to_provider_config(self) -> Dict[str, str]:
        return {"teamSlug": self.team_slug, "projectName": self.project_name}


@dataclass
class EmailStackConfig:
    """Inputs of the email stack program."""
    provider: str
    region: str
    email_config: EmailConfig
    vercel: Optional[VercelConfig] = None


def build_assume_role_policy(provider: str, oidc_provider_arn: Optional[str] = None,
                             vercel: Optional[VercelConfig] = None) -> Dict[str, Any]:
    """Trust policy of the sending role.

    Raises:
        ValueError: For providers without a trust policy
    """
    if provider == "vercel":
        if not oidc_provider_arn or vercel is None:
            raise ValueError("Vercel deployments need an OIDC provider and team configuration")
        issuer = f"oidc.vercel.com/{vercel.team_slug}"
        project = vercel.project_name or "*"
        return {
            "Version": "2012-10-17",
            "Statement": [{
                "Effect": "Allow",
                "Principal": {"Federated": oidc_provider_arn},
                "Action": "sts:AssumeRoleWithWebIdentity",
                "Condition": {
                    "StringEquals": {f"{issuer}:aud": f"https://vercel.com/{vercel.team_slug}"},
                    "StringLike": {
                        f"{issuer}:sub": f"owner:{vercel.team_slug}:project:{project}:environment:*"
                    },
                },
            }],
        }

    if provider == "aws":
        return {
            "Version": "2012-10-17",
            "Statement": [{
                "Effect": "Allow",
                "Principal": {"Service": ["lambda.amazonaws.com", "ec2.amazonaws.com", "ecs-tasks.amazonaws.com"]},
                "Action": "sts:AssumeRole",
            }],
        }

    raise ValueError(f"Provider {provider} is not supported yet")


def build_role_policy(config: EmailConfig) -> Dict[str, Any]:
    """Permissions of the sending role for the enabled features."""
    statements: List[Dict[str, Any]] = [{
        "Effect": "Allow",
        "Action": [
            "ses:GetSendStatistics",
            "ses:ListIdentities",
            "ses:GetIdentityVerificationAttributes",
            "cloudwatch:GetMetricData",
            "cloudwatch:GetMetricStatistics",
        ],
        "Resource": "*",
    }]

    if config.sending_enabled is not False:
        statements.append({
            "Effect": "Allow",
            "Action": ["ses:SendEmail", "ses:SendRawEmail", "ses:SendTemplatedEmail", "ses:SendBulkTemplatedEmail"],
            "Resource": "*",
        })

    if config.history_enabled:
        statements.append({
            "Effect": "Allow",
            "Action": ["dynamodb:PutItem", "dynamodb:GetItem", "dynamodb:Query", "dynamodb:Scan",
                       "dynamodb:BatchGetItem"],
            "Resource": [
                f"arn:aws:dynamodb:*:*:table/{RESOURCE_PREFIX}-*",
                f"arn:aws:dynamodb:*:*:table/{RESOURCE_PREFIX}-*/index/*",
            ],
        })

    if config.event_tracking_enabled:
        statements.append({
            "Effect": "Allow",
            "Action": ["events:PutEvents", "events:DescribeEventBus"],
            "Resource": f"arn:aws:events:*:*:event-bus/{RESOURCE_PREFIX}-*",
        })
        statements.append({
            "Effect": "Allow",
            "Action": ["sqs:SendMessage", "sqs:ReceiveMessage", "sqs:DeleteMessage", "sqs:GetQueueAttributes"],
            "Resource": f"arn:aws:sqs:*:*:{RESOURCE_PREFIX}-*",
        })

    if config.archiving_enabled:
        statements.append({
            "Effect": "Allow",
            "Action": [
                "ses:StartArchiveSearch",
                "ses:GetArchiveSearchResults",
                "ses:GetArchiveMessage",
                "ses:GetArchiveMessageContent",
                "ses:GetArchive",
                "ses:ListArchives",
                "ses:StartArchiveExport",
                "ses:GetArchiveExport",
            ],
            "Resource": "arn:aws:ses:*:*:mailmanager-archive/*",
        })

    return {"Version": "2012-10-17", "Statement": statements}


def ses_event_pattern() -> Dict[str, Any]:
    """EventBridge pattern matching SES email events."""
    return {"source": ["aws.ses"], "detail-type": ["SES Email Event"]}


def tracked_event_types(config: EmailConfig) -> List[str]:
    if config.event_tracking and config.event_tracking.events:
        return list(config.event_tracking.events)
    return list(ALL_EVENT_TYPES)


def history_retention_days(config: EmailConfig) -> int:
    """Days before a history item expires; 0 keeps items forever."""
    if not config.event_tracking or not config.event_tracking.archive_retention:
        return DEFAULT_HISTORY_DAYS
    return retention_days(config.event_tracking.archive_retention) or 0


def mail_from_domain_for(config: EmailConfig) -> Optional[str]:
    if not config.domain:
        return None
    return config.mail_from_domain or f"mail.{config.domain}"


def _create_role(stack_config: EmailStackConfig, account_id: str) -> aws.iam.Role:
    if stack_config.provider == "vercel":
        vercel = stack_config.vercel
        if vercel is None:
            raise ValueError("Vercel deployments need a team slug and project name")
        oidc = aws.iam.OpenIdConnectProvider(
            "wraps-vercel-oidc",
            url=f"https://oidc.vercel.com/{vercel.team_slug}",
            client_id_lists=[f"https://vercel.com/{vercel.team_slug}"],
            thumbprint_lists=VERCEL_OIDC_THUMBPRINTS,
            tags={**MANAGED_TAGS, "Provider": "vercel"},
        )
        assume_role_policy = oidc.arn.apply(
            lambda arn: json.dumps(build_assume_role_policy("vercel", arn, vercel))
        )
    else:
        assume_role_policy = json.dumps(build_assume_role_policy(stack_config.provider))

    role = aws.iam.Role(
        f"{RESOURCE_PREFIX}-role",
        name=f"{RESOURCE_PREFIX}-role",
        assume_role_policy=assume_role_policy,
        tags={**MANAGED_TAGS, "Provider": stack_config.provider, "Account": account_id},
    )
    aws.iam.RolePolicy(
        f"{RESOURCE_PREFIX}-policy",
        role=role.name,
        policy=json.dumps(build_role_policy(stack_config.email_config)),
    )
    return role


def _create_configuration_set(config: EmailConfig) -> aws.sesv2.ConfigurationSet:
    tracking_options = None
    if config.tracking_domain:
        tracking_options = aws.sesv2.ConfigurationSetTrackingOptionsArgs(
            custom_redirect_domain=config.tracking_domain,
            https_policy="REQUIRE" if config.tracking.https_enabled else "OPTIONAL",
        )

    suppression_options = None
    if config.suppression_list and config.suppression_list.enabled:
        suppression_options = aws.sesv2.ConfigurationSetSuppressionOptionsArgs(
            suppressed_reasons=list(config.suppression_list.reasons),
        )

    return aws.sesv2.ConfigurationSet(
        CONFIG_SET_NAME,
        configuration_set_name=CONFIG_SET_NAME,
        delivery_options=aws.sesv2.ConfigurationSetDeliveryOptionsArgs(tls_policy="REQUIRE")
        if config.tls_required else None,
        reputation_options=aws.sesv2.ConfigurationSetReputationOptionsArgs(
            reputation_metrics_enabled=bool(config.reputation_metrics),
        ),
        sending_options=aws.sesv2.ConfigurationSetSendingOptionsArgs(
            sending_enabled=config.sending_enabled is not False,
        ),
        suppression_options=suppression_options,
        tracking_options=tracking_options,
        tags={**MANAGED_TAGS, "Description": "Wraps email tracking configuration set"},
    )


def _create_history_table() -> aws.dynamodb.Table:
    return aws.dynamodb.Table(
        HISTORY_TABLE_NAME,
        name=HISTORY_TABLE_NAME,
        billing_mode="PAY_PER_REQUEST",
        hash_key="messageId",
        range_key="sentAt",
        attributes=[
            aws.dynamodb.TableAttributeArgs(name="messageId", type="S"),
            aws.dynamodb.TableAttributeArgs(name="sentAt", type="N"),
            aws.dynamodb.TableAttributeArgs(name="accountId", type="S"),
        ],
        global_secondary_indexes=[
            aws.dynamodb.TableGlobalSecondaryIndexArgs(
                name="accountId-sentAt-index",
                hash_key="accountId",
                range_key="sentAt",
                projection_type="ALL",
            )
        ],
        ttl=aws.dynamodb.TableTtlArgs(enabled=True, attribute_name="expiresAt"),
        tags=MANAGED_TAGS,
    )


def _create_event_queues():
    dlq = aws.sqs.Queue(
        f"{EVENTS_QUEUE_NAME}-dlq",
        name=f"{EVENTS_QUEUE_NAME}-dlq",
        message_retention_seconds=1_209_600,  # 14 days
        tags={**MANAGED_TAGS, "Description": "Dead letter queue for failed SES event processing"},
    )
    queue = aws.sqs.Queue(
        EVENTS_QUEUE_NAME,
        name=EVENTS_QUEUE_NAME,
        visibility_timeout_seconds=300,  # matches the Lambda timeout
        message_retention_seconds=345_600,  # 4 days
        receive_wait_time_seconds=20,
        redrive_policy=dlq.arn.apply(
            lambda arn: json.dumps({"deadLetterTargetArn": arn, "maxReceiveCount": 3})
        ),
        tags={**MANAGED_TAGS, "Description": "Queue for SES email events from EventBridge"},
    )
    return queue, dlq


def _route_events_to_queue(event_bus_name, queue: aws.sqs.Queue) -> None:
    rule = aws.cloudwatch.EventRule(
        f"{RESOURCE_PREFIX}-events-rule",
        name=f"{RESOURCE_PREFIX}-events-to-sqs",
        description="Route all SES email events to SQS for processing",
        event_bus_name=event_bus_name,
        event_pattern=json.dumps(ses_event_pattern()),
        tags=MANAGED_TAGS,
    )
    aws.sqs.QueuePolicy(
        f"{RESOURCE_PREFIX}-events-queue-policy",
        queue_url=queue.url,
        policy=pulumi.Output.all(queue.arn, rule.arn).apply(
            lambda arns: json.dumps({
                "Version": "2012-10-17",
                "Statement": [{
                    "Effect": "Allow",
                    "Principal": {"Service": "events.amazonaws.com"},
                    "Action": "sqs:SendMessage",
                    "Resource": arns[0],
                    "Condition": {"ArnEquals": {"aws:SourceArn": arns[1]}},
                }],
            })
        ),
    )
    aws.cloudwatch.EventTarget(
        f"{RESOURCE_PREFIX}-events-target",
        rule=rule.name,
        event_bus_name=event_bus_name,
        arn=queue.arn,
    )


def _create_event_processor(table: aws.dynamodb.Table, queue: aws.sqs.Queue, account_id: str,
                            ttl_days: int) -> aws.lambda_.Function:
    lambda_role = aws.iam.Role(
        f"{RESOURCE_PREFIX}-lambda-role",
        assume_role_policy=json.dumps({
            "Version": "2012-10-17",
            "Statement": [{
                "Effect": "Allow",
                "Principal": {"Service": "lambda.amazonaws.com"},
                "Action": "sts:AssumeRole",
            }],
        }),
        tags=MANAGED_TAGS,
    )
    aws.iam.RolePolicyAttachment(
        f"{RESOURCE_PREFIX}-lambda-basic-execution",
        role=lambda_role.name,
        policy_arn="arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole",
    )
    aws.iam.RolePolicy(
        f"{RESOURCE_PREFIX}-lambda-policy",
        role=lambda_role.name,
        policy=pulumi.Output.all(table.name, queue.arn).apply(
            lambda values: json.dumps({
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Action": ["dynamodb:PutItem", "dynamodb:GetItem", "dynamodb:Query", "dynamodb:Scan",
                                   "dynamodb:UpdateItem"],
                        "Resource": [
                            f"arn:aws:dynamodb:*:*:table/{values[0]}",
                            f"arn:aws:dynamodb:*:*:table/{values[0]}/index/*",
                        ],
                    },
                    {
                        "Effect": "Allow",
                        "Action": ["sqs:ReceiveMessage", "sqs:DeleteMessage", "sqs:GetQueueAttributes"],
                        "Resource": values[1],
                    },
                ],
            })
        ),
    )

    function = aws.lambda_.Function(
        EVENT_PROCESSOR_NAME,
        name=EVENT_PROCESSOR_NAME,
        runtime="python3.12",
        handler="event_processor.handler",
        role=lambda_role.arn,
        code=pulumi.AssetArchive({"event_processor.py": pulumi.FileAsset(str(LAMBDA_SOURCE))}),
        timeout=300,
        memory_size=512,
        environment=aws.lambda_.FunctionEnvironmentArgs(variables={
            "TABLE_NAME": table.name,
            "AWS_ACCOUNT_ID": account_id,
            "RETENTION_DAYS": str(ttl_days),
        }),
        tags={**MANAGED_TAGS, "Description": "Process SES email events from SQS and store in DynamoDB"},
    )
    aws.lambda_.EventSourceMapping(
        f"{RESOURCE_PREFIX}-event-source-mapping",
        event_source_arn=queue.arn,
        function_name=function.name,
        batch_size=10,
    )
    return function


def deploy_email_stack(stack_config: EmailStackConfig) -> Dict[str, Any]:
    """Declare the stack's resources and return its outputs."""
    config = stack_config.email_config
    account_id = aws.get_caller_identity().account_id

    role = _create_role(stack_config, account_id)

    outputs: Dict[str, Any] = {
        "roleArn": role.arn,
        "region": stack_config.region,
        "domain": config.domain,
        "customTrackingDomain": config.tracking_domain,
        "archivingEnabled": config.archiving_enabled,
        "archiveRetention": config.email_archiving.retention if config.archiving_enabled else None,
    }

    config_set = None
    if config.tracking_enabled or config.event_tracking_enabled or config.domain:
        config_set = _create_configuration_set(config)
        outputs["configSetName"] = config_set.configuration_set_name

    default_bus = aws.cloudwatch.get_event_bus_output(name="default")

    if config_set is not None and config.event_tracking_enabled:
        aws.sesv2.ConfigurationSetEventDestination(
            f"{RESOURCE_PREFIX}-all-events",
            configuration_set_name=config_set.configuration_set_name,
            event_destination_name=f"{RESOURCE_PREFIX}-eventbridge",
            event_destination=aws.sesv2.ConfigurationSetEventDestinationEventDestinationArgs(
                enabled=True,
                matching_event_types=tracked_event_types(config),
                event_bridge_destination=aws.sesv2.ConfigurationSetEventDestinationEventDestinationEventBridgeDestinationArgs(
                    event_bus_arn=default_bus.arn,
                ),
            ),
        )

    if config.domain and config_set is not None:
        identity = aws.sesv2.EmailIdentity(
            f"{RESOURCE_PREFIX}-domain",
            email_identity=config.domain,
            configuration_set_name=config_set.configuration_set_name,
            dkim_signing_attributes=aws.sesv2.EmailIdentityDkimSigningAttributesArgs(
                next_signing_key_length="RSA_2048_BIT",
            ),
            tags=MANAGED_TAGS,
        )
        mail_from_domain = mail_from_domain_for(config)
        aws.sesv2.EmailIdentityMailFromAttributes(
            f"{RESOURCE_PREFIX}-mail-from",
            email_identity=config.domain,
            mail_from_domain=mail_from_domain,
            behavior_on_mx_failure="USE_DEFAULT_VALUE",
            opts=pulumi.ResourceOptions(depends_on=[identity]),
        )
        outputs["dkimTokens"] = identity.dkim_signing_attributes.apply(
            lambda attrs: list(attrs.tokens or []) if attrs else []
        )
        outputs["mailFromDomain"] = mail_from_domain

    queue = None
    if config.event_tracking_enabled:
        queue, dlq = _create_event_queues()
        _route_events_to_queue(default_bus.name, queue)
        outputs["queueUrl"] = queue.url
        outputs["dlqUrl"] = dlq.url

    if config.history_enabled:
        table = _create_history_table()
        outputs["tableName"] = table.name
        if queue is not None:
            processor = _create_event_processor(table, queue, account_id, history_retention_days(config))
            outputs["lambdaFunctions"] = pulumi.Output.all(processor.arn)

    return outputs


def build_program(stack_config: EmailStackConfig) -> Callable[[], None]:
    """Inline Pulumi program that deploys the stack and exports its outputs."""

    def program() -> None:
        for name, value in deploy_email_stack(stack_config).items():
            if value is not None:
                pulumi.export(name, value)

    return program
