"""
Imports every ORM model so that ``Base.metadata`` knows all tables before
``create_all``.
"""


def import_all_orm_models() -> None:
    import ledger_kernel.models  # noqa: F401
    import ledger_kernel.services.sequence_service  # noqa: F401
    import ledger_modules.documents.orm  # noqa: F401
