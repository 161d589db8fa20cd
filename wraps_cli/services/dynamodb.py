"""
DynamoDB table scanner.
"""
import logging
from typing import List

from .base import AWS_ERRORS, BaseResourceScanner
from .models import DynamoTable

logger = logging.getLogger(__name__)


class DynamoTableScanner(BaseResourceScanner):
    """Lists DynamoDB tables with status and size."""

    family = 'dynamo_tables'

    @property
    def service_name(self) -> str:
        return 'dynamodb'

    def scan(self) -> List[DynamoTable]:
        names = []
        try:
            paginator = self.client.get_paginator('list_tables')
            for page in paginator.paginate():
                names.extend(page.get('TableNames', []))
        except AWS_ERRORS as e:
            self._handle_aws_error(e, 'table discovery')

        tables = []
        for name in names:
            try:
                table = self.client.describe_table(TableName=name)['Table']
            except AWS_ERRORS as e:
                logger.warning(f"Error describing table {name}: {e}")
                continue

            tables.append(DynamoTable(
                name=name,
                status=table.get('TableStatus', 'UNKNOWN'),
                item_count=table.get('ItemCount'),
                size_bytes=table.get('TableSizeBytes'),
            ))

        return tables
