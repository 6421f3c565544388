"""
DynamoDB utility functions and guarded (conditional) writes.

Every write that depends on current row state goes through a Guard so that
DynamoDB's single-item conditional write is the only serialization point.
"""
import boto3
from typing import List, Dict, Any, Optional, Iterable
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError
from .config import config
from .errors import StoreUnavailable
from .logging import logger

dynamodb = boto3.resource('dynamodb', region_name=config.AWS_REGION)


class Guard:
    """
    Predicate on the current state of a single item.

    Renders to a boto3 condition for the store, and can be evaluated
    against an in-memory item with matches().

    Args:
        equals: attribute -> value that must match exactly
        is_null: attributes that must be absent or NULL
        at_least: attribute -> lower bound (inclusive)
        at_most: attribute -> upper bound (inclusive)
        one_of: attribute -> allowed values
    """

    def __init__(
        self,
        equals: Optional[Dict[str, Any]] = None,
        is_null: Iterable[str] = (),
        at_least: Optional[Dict[str, Any]] = None,
        at_most: Optional[Dict[str, Any]] = None,
        one_of: Optional[Dict[str, Iterable[Any]]] = None
    ):
        self.equals = dict(equals or {})
        self.is_null = tuple(is_null)
        self.at_least = dict(at_least or {})
        self.at_most = dict(at_most or {})
        self.one_of = {k: tuple(v) for k, v in (one_of or {}).items()}

    def matches(self, item: Optional[Dict[str, Any]]) -> bool:
        if item is None:
            return False
        for name, value in self.equals.items():
            if item.get(name) != value:
                return False
        for name in self.is_null:
            if item.get(name) is not None:
                return False
        for name, bound in self.at_least.items():
            if item.get(name) is None or item[name] < bound:
                return False
        for name, bound in self.at_most.items():
            if item.get(name) is None or item[name] > bound:
                return False
        for name, allowed in self.one_of.items():
            if item.get(name) not in allowed:
                return False
        return True

    def to_condition(self):
        """Build the boto3 ConditionExpression, or None for an empty guard."""
        parts = []
        for name, value in self.equals.items():
            parts.append(Attr(name).eq(value))
        for name in self.is_null:
            parts.append(Attr(name).not_exists() | Attr(name).attribute_type('NULL'))
        for name, bound in self.at_least.items():
            parts.append(Attr(name).gte(bound))
        for name, bound in self.at_most.items():
            parts.append(Attr(name).lte(bound))
        for name, allowed in self.one_of.items():
            parts.append(Attr(name).is_in(list(allowed)))

        if not parts:
            return None
        condition = parts[0]
        for part in parts[1:]:
            condition = condition & part
        return condition

    def __repr__(self):
        return (f"Guard(equals={self.equals!r}, is_null={self.is_null!r}, "
                f"at_least={self.at_least!r}, at_most={self.at_most!r}, one_of={self.one_of!r})")


def _is_condition_failure(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


def build_update_expression(updates: Dict[str, Any]):
    """
    Build a SET update expression with placeholder names and values.
    None values are written as NULL.

    Returns:
        (update_expression, expression_names, expression_values)
    """
    if not updates:
        raise ValueError("updates must not be empty")

    assignments = []
    names = {}
    values = {}
    for idx, (attr, value) in enumerate(updates.items()):
        names[f'#u{idx}'] = attr
        values[f':u{idx}'] = value
        assignments.append(f'#u{idx} = :u{idx}')

    return 'SET ' + ', '.join(assignments), names, values


def query(
    table_name: str,
    index_name: Optional[str] = None,
    key_condition: Optional[Any] = None,
    filter_expression: Optional[Any] = None,
    limit: Optional[int] = None,
    scan_forward: bool = True
) -> List[Dict[str, Any]]:
    """
    Query DynamoDB table or index.

    Args:
        table_name: Name of the DynamoDB table
        index_name: Optional GSI name
        key_condition: Key condition expression
        filter_expression: Optional filter expression
        limit: Max items to return
        scan_forward: True for ascending, False for descending

    Returns:
        List of items matching the query
    """
    try:
        table = dynamodb.Table(table_name)

        query_params = {
            'ScanIndexForward': scan_forward
        }

        if index_name:
            query_params['IndexName'] = index_name
        if key_condition is not None:
            query_params['KeyConditionExpression'] = key_condition
        if filter_expression is not None:
            query_params['FilterExpression'] = filter_expression

        items = []
        while True:
            response = table.query(**query_params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            # Limit is applied before the filter, so keep paging until enough matches
            if not last_key or (limit and len(items) >= limit):
                break
            query_params['ExclusiveStartKey'] = last_key

        return items[:limit] if limit else items

    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error querying {table_name}: {e}")
        raise StoreUnavailable(f"query on {table_name} failed") from e


def scan(
    table_name: str,
    filter_expression: Optional[Any] = None,
    limit: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Scan a table, following pagination until `limit` matching items are found."""
    try:
        table = dynamodb.Table(table_name)
        scan_params = {}
        if filter_expression is not None:
            scan_params['FilterExpression'] = filter_expression

        items = []
        while True:
            response = table.scan(**scan_params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key or (limit and len(items) >= limit):
                break
            scan_params['ExclusiveStartKey'] = last_key

        return items

    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error scanning {table_name}: {e}")
        raise StoreUnavailable(f"scan on {table_name} failed") from e


def get_item(table_name: str, key: Dict[str, Any], consistent: bool = True) -> Optional[Dict[str, Any]]:
    """Get a single item from DynamoDB (strongly consistent by default)."""
    try:
        table = dynamodb.Table(table_name)
        response = table.get_item(Key=key, ConsistentRead=consistent)
        return response.get('Item')
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error getting item from {table_name}: {e}")
        raise StoreUnavailable(f"get_item on {table_name} failed") from e


def put_item(table_name: str, item: Dict[str, Any], guard: Optional[Guard] = None) -> bool:
    """
    Put an item, optionally guarded.

    Returns:
        True if written, False if the guard did not hold
    """
    try:
        table = dynamodb.Table(table_name)
        params = {'Item': item}
        condition = guard.to_condition() if guard else None
        if condition is not None:
            params['ConditionExpression'] = condition
        table.put_item(**params)
        return True

    except ClientError as e:
        if _is_condition_failure(e):
            return False
        logger.error(f"Error putting item into {table_name}: {e}")
        raise StoreUnavailable(f"put_item on {table_name} failed") from e
    except BotoCoreError as e:
        logger.error(f"Error putting item into {table_name}: {e}")
        raise StoreUnavailable(f"put_item on {table_name} failed") from e


def update_item(
    table_name: str,
    key: Dict[str, Any],
    update_expression: str,
    expression_values: Dict[str, Any],
    expression_names: Optional[Dict[str, str]] = None
) -> None:
    """Update an item in DynamoDB without a guard (for fields nobody races on)."""
    try:
        table = dynamodb.Table(table_name)

        params = {
            'Key': key,
            'UpdateExpression': update_expression,
            'ExpressionAttributeValues': expression_values
        }

        if expression_names:
            params['ExpressionAttributeNames'] = expression_names

        table.update_item(**params)

    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error updating item in {table_name}: {e}")
        raise StoreUnavailable(f"update_item on {table_name} failed") from e


def conditional_update(
    table_name: str,
    key: Dict[str, Any],
    updates: Dict[str, Any],
    guard: Guard
) -> Optional[Dict[str, Any]]:
    """
    Apply `updates` to one item only if `guard` holds on its current state.
    The check and the write are a single atomic DynamoDB operation.

    Args:
        table_name: Name of the DynamoDB table
        key: Primary key of the item
        updates: attribute -> new value (None writes NULL)
        guard: Predicate the current item must satisfy

    Returns:
        The updated item, or None if the guard did not hold (no change made)
    """
    update_expression, names, values = build_update_expression(updates)
    condition = guard.to_condition()

    params = {
        'Key': key,
        'UpdateExpression': update_expression,
        'ExpressionAttributeNames': names,
        'ExpressionAttributeValues': values,
        'ReturnValues': 'ALL_NEW'
    }
    if condition is not None:
        params['ConditionExpression'] = condition

    try:
        table = dynamodb.Table(table_name)
        response = table.update_item(**params)
        return response.get('Attributes')

    except ClientError as e:
        if _is_condition_failure(e):
            logger.info(f"Guarded update on {table_name} {key} did not apply")
            return None
        logger.error(f"Error in guarded update on {table_name}: {e}")
        raise StoreUnavailable(f"conditional update on {table_name} failed") from e
    except BotoCoreError as e:
        logger.error(f"Error in guarded update on {table_name}: {e}")
        raise StoreUnavailable(f"conditional update on {table_name} failed") from e
