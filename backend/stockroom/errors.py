# Overview: Shared exception hierarchy for procurement services and the HTTP error mapping.

"""
Stockroom error taxonomy.

Every service defines its own NotFound / Validation / State errors (for
example PurchaseOrderStateError) the same way the services always have, but
each of them now inherits from one of the base kinds below so routes and the
CLI can catch by kind instead of by service:

    StockroomError
    +-- NotFoundError           referenced entity does not exist in scope
    +-- ValidationError         bad input, nothing was mutated
    +-- StateError              entity is not in the required source state
    +-- PermissionDeniedError   missing capability or branch outside scope
    +-- CollaboratorError       persistence or notification failure

Each class carries an http_status and a machine-readable code.
"""


class StockroomError(Exception):
    """Base class for all domain errors."""
    code = "STOCKROOM_ERROR"
    http_status = 500


class NotFoundError(StockroomError):
    code = "NOT_FOUND"
    http_status = 404


class ValidationError(StockroomError):
    code = "VALIDATION_ERROR"
    http_status = 400


class StateError(StockroomError):
    code = "INVALID_STATE"
    http_status = 409


class PermissionDeniedError(StockroomError):
    code = "PERMISSION_DENIED"
    http_status = 403


class CollaboratorError(StockroomError):
    code = "COLLABORATOR_FAILURE"
    http_status = 502


def error_payload(exc: StockroomError) -> dict:
    return {
        "error": str(exc),
        "type": exc.code,
    }
