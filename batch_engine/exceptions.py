"""
Batch engine errors.

Transport errors are absorbed by the polling engine; item failures travel as
data on BatchItem. Everything raised from here is a caller error.
"""

from typing import Optional


class BatchEngineError(Exception):
    """Base error for the batch engine"""
    pass


class BatchNotFoundError(BatchEngineError):
    """Raised when a batch id is not present in the store"""
    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class InvalidTransitionError(BatchEngineError):
    """Raised when a lifecycle action is not allowed from the current state"""
    def __init__(self, batch_id: str, action: str, state: str):
        self.batch_id = batch_id
        self.action = action
        self.state = state
        super().__init__(f"Cannot {action} batch {batch_id} in state '{state}'")


class ConfirmationRequiredError(BatchEngineError):
    """Raised when an action is confirmed without a pending request"""
    pass


class WorkerRequestError(BatchEngineError):
    """Raised by the worker client when an advance call yields no usable response"""
    def __init__(self, batch_id: str, message: str, status_code: Optional[int] = None):
        self.batch_id = batch_id
        self.status_code = status_code
        super().__init__(f"Advance failed for batch {batch_id}: {message}")
