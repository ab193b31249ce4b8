"""Error kinds raised by the service layer.

Every error carries a stable ``code`` that the API returns alongside the
human-readable message, plus the HTTP status it maps to.
"""

from __future__ import annotations


class InventoryError(ValueError):
    code = 'Error'
    status_code = 400
    default_message = 'Request could not be completed'

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class Forbidden(InventoryError, PermissionError):
    code = 'Forbidden'
    status_code = 403
    default_message = 'You do not have permission to perform this action'


class NotFound(InventoryError):
    code = 'NotFound'
    status_code = 404
    default_message = 'Not found'


class InvalidQuantity(InventoryError):
    code = 'InvalidQuantity'
    status_code = 409
    default_message = 'Cannot reduce stock below 0'


class InsufficientStock(InventoryError):
    code = 'InsufficientStock'
    status_code = 409
    default_message = 'Requested quantity exceeds available stock'


class OutOfStock(InventoryError):
    code = 'OutOfStock'
    status_code = 409
    default_message = 'Item is out of stock'


class ItemArchived(InventoryError):
    code = 'ItemArchived'
    status_code = 409
    default_message = 'Item is archived'


class DuplicateItem(InventoryError):
    code = 'DuplicateItem'
    status_code = 409
    default_message = 'An active item with this name and category already exists'


class DuplicateUser(InventoryError):
    code = 'DuplicateUser'
    status_code = 409
    default_message = 'Email already exists'


class InvalidCategory(InventoryError):
    code = 'InvalidCategory'
    status_code = 422
    default_message = 'Invalid category'


class ValidationFailed(InventoryError):
    code = 'ValidationFailed'
    status_code = 422
    default_message = 'Invalid input'


class AlreadyResolved(InventoryError):
    code = 'AlreadyResolved'
    status_code = 409
    default_message = 'Request has already been resolved'


class TooManyAttempts(InventoryError):
    code = 'TooManyAttempts'
    status_code = 429
    default_message = 'Too many failed login attempts. Try again later.'


class StorageFailure(InventoryError):
    code = 'StorageFailure'
    status_code = 503
    default_message = 'The change could not be saved. No changes were applied.'
