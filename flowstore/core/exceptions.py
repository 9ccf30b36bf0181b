"""
Exception types raised by the flowstore services.

Hierarchy:
- FlowStoreError (base)
  - FlowOperationError   (a create/update was rolled back)
    - FlowValidationError (request body violates a structural rule)
    - FlowStorageError    (the database rejected a statement)
  - NotFoundError
    - FlowNotFoundError
    - GroupNotFoundError

Nothing here is retried; the HTTP layer turns these into JSON error bodies.
"""

from __future__ import annotations


class FlowStoreError(Exception):
    """Base exception for all flowstore errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FlowOperationError(FlowStoreError):
    """A transactional flow operation failed and was rolled back."""


class FlowValidationError(FlowOperationError):
    """The submitted flow definition is malformed."""


class FlowStorageError(FlowOperationError):
    """A storage statement failed inside a flow transaction."""


class NotFoundError(FlowStoreError):
    pass


class FlowNotFoundError(NotFoundError):
    def __init__(self, flow_id: str):
        super().__init__(f"Flow {flow_id} not found")
        self.flow_id = flow_id


class GroupNotFoundError(NotFoundError):
    def __init__(self, group_id: str):
        super().__init__(f"Group {group_id} not found")
        self.group_id = group_id
