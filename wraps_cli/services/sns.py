"""
SNS topic scanner.
"""
import logging
from typing import List

from .base import AWS_ERRORS, BaseResourceScanner
from .models import SNSTopic

logger = logging.getLogger(__name__)


class SNSTopicScanner(BaseResourceScanner):
    """Lists SNS topics with their confirmed subscription counts."""

    family = 'sns_topics'

    @property
    def service_name(self) -> str:
        return 'sns'

    def scan(self) -> List[SNSTopic]:
        arns = []
        try:
            paginator = self.client.get_paginator('list_topics')
            for page in paginator.paginate():
                arns.extend(topic['TopicArn'] for topic in page.get('Topics', []) if topic.get('TopicArn'))
        except AWS_ERRORS as e:
            self._handle_aws_error(e, 'topic discovery')

        topics = []
        for arn in arns:
            try:
                attributes = self.client.get_topic_attributes(TopicArn=arn).get('Attributes', {})
            except AWS_ERRORS as e:
                logger.warning(f"Error getting topic attributes for {arn}: {e}")
                continue

            topics.append(SNSTopic(
                arn=arn,
                name=arn.split(':')[-1],
                subscriptions=int(attributes.get('SubscriptionsConfirmed', '0') or 0),
            ))

        return topics
