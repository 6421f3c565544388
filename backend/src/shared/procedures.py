"""
Invocation of named server-side procedures (the timeout handlers).
"""
import json
import boto3
from typing import Any, Callable, Dict
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from .config import config
from .errors import ProcedureError
from .logging import logger
from .utils import DecimalEncoder

# Procedures are idempotent, so transport-level retries are always safe
lambda_client = boto3.client(
    'lambda',
    region_name=config.AWS_REGION,
    config=BotoConfig(retries={'max_attempts': config.PROCEDURE_MAX_ATTEMPTS, 'mode': 'standard'})
)


class LambdaProcedureClient:
    """Invokes a procedure as a synchronous Lambda call."""

    def invoke(self, name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = lambda_client.invoke(
                FunctionName=name,
                InvocationType='RequestResponse',
                Payload=json.dumps(payload, cls=DecimalEncoder).encode('utf-8')
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error invoking procedure {name}: {e}")
            raise ProcedureError(f"could not invoke {name}") from e

        body = response['Payload'].read()
        if response.get('FunctionError'):
            logger.error(f"Procedure {name} failed: {body!r}")
            raise ProcedureError(f"{name} raised {response['FunctionError']}")

        return json.loads(body or b'{}')


class LocalProcedureClient:
    """Runs procedures in-process, keyed by name."""

    def __init__(self, procedures: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]]):
        self.procedures = dict(procedures)

    def invoke(self, name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            procedure = self.procedures[name]
        except KeyError:
            raise ProcedureError(f"Unknown procedure: {name}")
        return procedure(payload)
