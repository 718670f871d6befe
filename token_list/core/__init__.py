from .worker import STAGES, MissingInputError, TokenListWorker

__all__ = ["STAGES", "MissingInputError", "TokenListWorker"]
