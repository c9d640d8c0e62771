"""Domain layer for paysettle application.

Services are imported lazily: the database layer imports the entity
module from this package, and the services import the database layer.
"""

_SERVICES = {
    "AccountStore": "paysettle.domain.account",
    "TransactionLedger": "paysettle.domain.ledger",
    "DisbursementRouter": "paysettle.domain.router",
    "InvoiceService": "paysettle.domain.invoice",
    "PayrollService": "paysettle.domain.payroll",
}

__all__ = list(_SERVICES)


def __getattr__(name):
    module_name = _SERVICES.get(name)
    if module_name is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    from importlib import import_module

    return getattr(import_module(module_name), name)
