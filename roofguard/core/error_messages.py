"""
User-facing error messages and server-side error logging.

Clients only ever see the generic texts below in production; the real
exception goes to the server log.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from roofguard.core.config import is_development

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGES = {
    "AUTH_FAILED": "Échec de l'authentification. Veuillez réessayer.",
    "UNAUTHORIZED": "Vous n'êtes pas autorisé à effectuer cette action.",
    "NOT_FOUND": "La ressource demandée n'existe pas.",
    "INVALID_INPUT": "Les données fournies sont invalides.",
    "SERVER_ERROR": "Une erreur est survenue. Veuillez réessayer plus tard.",
    "FORBIDDEN": "Accès refusé.",
    "RATE_LIMIT": "Trop de tentatives. Veuillez réessayer dans quelques minutes.",
}

# Metadata keys that must never reach the logs in clear text
SENSITIVE_KEYS = ("password", "token", "secret", "authorization", "cookie")


def sanitize_error(error: Any, fallback_message: str = GENERIC_ERROR_MESSAGES["SERVER_ERROR"]) -> str:
    """
    Return a message that is safe to show to the client.

    In development the real message is returned for exceptions and plain
    strings; every other case, and every case in production, gets the
    fallback.
    """
    if is_development():
        if isinstance(error, BaseException):
            # KeyError and friends quote their argument in str()
            if len(error.args) == 1 and isinstance(error.args[0], str):
                return error.args[0]
            return str(error)
        if isinstance(error, str):
            return error

    return fallback_message


def _mask_metadata(metadata: Mapping[str, Any]) -> Dict[str, Any]:
    masked = {}
    for key, value in metadata.items():
        if any(marker in str(key).lower() for marker in SENSITIVE_KEYS):
            masked[key] = "***"
        else:
            masked[key] = value
    return masked


def log_error(context: str, error: Any, metadata: Optional[Mapping[str, Any]] = None) -> None:
    """
    Log an error server side with its context.

    Args:
        context: Where the error happened (e.g. 'API /admin/users/create')
        error: The exception or message
        metadata: Extra context; secret-looking keys are masked
    """
    safe_metadata = _mask_metadata(metadata) if metadata else None
    exc_info = error if isinstance(error, BaseException) else None

    logger.error(
        f"[{context}] {type(error).__name__}: {error} | metadata={safe_metadata}",
        exc_info=exc_info
    )
