"""
IAM role scanner.
"""
from typing import List

from .base import AWS_ERRORS, BaseResourceScanner
from .models import IAMRole


class IAMRoleScanner(BaseResourceScanner):
    """Lists IAM roles. IAM is global, so every region sees the same roles."""

    family = 'iam_roles'

    @property
    def service_name(self) -> str:
        return 'iam'

    def scan(self) -> List[IAMRole]:
        roles = []
        try:
            paginator = self.client.get_paginator('list_roles')
            for page in paginator.paginate(PaginationConfig={'PageSize': 100}):
                for role in page.get('Roles', []):
                    roles.append(IAMRole(
                        name=role['RoleName'],
                        arn=role['Arn'],
                        assume_role_policy_document=role.get('AssumeRolePolicyDocument'),
                    ))
        except AWS_ERRORS as e:
            self._handle_aws_error(e, 'role discovery')

        return roles
