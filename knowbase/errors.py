# knowbase/errors.py
from __future__ import annotations


class KnowbaseError(Exception):
    """Basis aller fachlichen Fehler; `status_code` wird 1:1 als HTTP-Status genutzt."""

    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(KnowbaseError):
    status_code = 400


class NotFoundError(KnowbaseError):
    status_code = 404


class SelfParentError(KnowbaseError):
    status_code = 400


class CycleError(KnowbaseError):
    status_code = 400


class HasChildrenError(KnowbaseError):
    status_code = 400


class TreeBuildError(KnowbaseError):
    status_code = 500


class StorageError(KnowbaseError):
    status_code = 500
    retryable = False


class ConflictError(StorageError):
    """Schreibkonflikt (Lock / Serialisierung). Der Aufrufer darf es erneut versuchen."""

    status_code = 409
    retryable = True


class AIUnavailableError(KnowbaseError):
    status_code = 503


class AIUpstreamError(KnowbaseError):
    status_code = 502
