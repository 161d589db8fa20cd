"""
Lambda function scanner.
"""
from typing import List

from .base import AWS_ERRORS, BaseResourceScanner
from .models import LambdaFunction


class LambdaFunctionScanner(BaseResourceScanner):
    """Lists Lambda functions in the region."""

    family = 'lambda_functions'

    @property
    def service_name(self) -> str:
        return 'lambda'

    def scan(self) -> List[LambdaFunction]:
        functions = []
        try:
            paginator = self.client.get_paginator('list_functions')
            for page in paginator.paginate():
                for function in page.get('Functions', []):
                    if not function.get('FunctionName') or not function.get('FunctionArn'):
                        continue
                    functions.append(LambdaFunction(
                        name=function['FunctionName'],
                        arn=function['FunctionArn'],
                        runtime=function.get('Runtime'),
                        handler=function.get('Handler'),
                    ))
        except AWS_ERRORS as e:
            self._handle_aws_error(e, 'function discovery')

        return functions
