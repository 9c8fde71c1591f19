# roofguard/services/validation_service.py
"""
Input validation for route handlers and forms.

Validators never raise: they return a success or failure value so the caller
decides how to respond. UUID failures carry a single message; password
failures carry every violated rule so a form can list them all at once.
"""

from dataclasses import dataclass, field
from typing import Annotated, Any, List, Literal, Optional, Sequence, Tuple, Union
from urllib.parse import quote, urljoin, urlsplit, SplitResult
import logging
import re

from pydantic import StrictStr, StringConstraints, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from roofguard.core.config import get_site_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationSuccess:
    """Accepted value"""
    data: str
    success: Literal[True] = True


@dataclass(frozen=True)
class ValidationFailure:
    """Rejected value with a single message"""
    error: str
    success: Literal[False] = False


@dataclass(frozen=True)
class PasswordValidationFailure:
    """Rejected password with every rule it violates"""
    errors: List[str] = field(default_factory=list)
    success: Literal[False] = False


UUIDValidationResult = Union[ValidationSuccess, ValidationFailure]
PasswordValidationResult = Union[ValidationSuccess, PasswordValidationFailure]


# ===========================================
# UUID
# ===========================================

INVALID_ID_MESSAGE = "ID invalide"
UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

UUIDString = Annotated[StrictStr, StringConstraints(pattern=UUID_PATTERN)]
_uuid_adapter = TypeAdapter(UUIDString)


def validate_uuid(value: Any) -> UUIDValidationResult:
    """
    Validate a textual UUID (8-4-4-4-12 hex groups, dashes required).

    Returns:
        ValidationSuccess with the unchanged string, or ValidationFailure
    """
    try:
        return ValidationSuccess(data=_uuid_adapter.validate_python(value))
    except PydanticValidationError:
        return ValidationFailure(error=INVALID_ID_MESSAGE)


# ===========================================
# PASSWORD POLICY
# ===========================================

PASSWORD_MIN_LENGTH = 12
PASSWORD_TYPE_MESSAGE = "Le mot de passe doit être une chaîne de caractères"

PASSWORD_RULES: Tuple[Tuple[str, str], ...] = (
    (r"[A-Z]", "Le mot de passe doit contenir au moins une majuscule"),
    (r"[a-z]", "Le mot de passe doit contenir au moins une minuscule"),
    (r"[0-9]", "Le mot de passe doit contenir au moins un chiffre"),
    (r"[^A-Za-z0-9]", "Le mot de passe doit contenir au moins un caractère spécial (!@#$%^&*...)"),
)
PASSWORD_LENGTH_MESSAGE = f"Le mot de passe doit contenir au moins {PASSWORD_MIN_LENGTH} caractères"

_password_adapter = TypeAdapter(StrictStr)


def validate_password(password: Any) -> PasswordValidationResult:
    """
    Check a password against the security policy.

    Policy:
    - at least 12 characters
    - at least one uppercase letter, one lowercase letter and one digit
    - at least one character that is not a letter or digit

    Returns:
        ValidationSuccess with the password, or PasswordValidationFailure
        listing every unmet rule in policy order
    """
    try:
        password = _password_adapter.validate_python(password)
    except PydanticValidationError:
        return PasswordValidationFailure(errors=[PASSWORD_TYPE_MESSAGE])

    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(PASSWORD_LENGTH_MESSAGE)

    for pattern, message in PASSWORD_RULES:
        if not re.search(pattern, password):
            errors.append(message)

    if errors:
        return PasswordValidationFailure(errors=errors)

    return ValidationSuccess(data=password)


# ===========================================
# REDIRECTS
# ===========================================

DEFAULT_ALLOWED_REDIRECT_PATHS: Tuple[str, ...] = ("/admin", "/client")

_DEFAULT_PORTS = {"http": 80, "https": 443}
_PATH_SAFE_CHARS = "/%:@!$&'()*+,;=-._~"
_SINGLE_DOT_SEGMENTS = frozenset({".", "%2e"})
_DOUBLE_DOT_SEGMENTS = frozenset({"..", ".%2e", "%2e.", "%2e%2e"})


def _origin(parts: SplitResult) -> Tuple[str, str, Optional[int]]:
    scheme = parts.scheme.lower()
    return scheme, (parts.hostname or "").lower(), parts.port or _DEFAULT_PORTS.get(scheme)


def _remove_dot_segments(path: str) -> str:
    # Browsers also read percent-encoded dots ("%2e", "%2E") as dot segments
    segments = path.split("/")[1:]
    output: List[str] = []
    for position, segment in enumerate(segments, start=1):
        is_last = position == len(segments)
        lowered = segment.lower()
        if lowered in _DOUBLE_DOT_SEGMENTS:
            if output:
                output.pop()
            if is_last:
                output.append("")
        elif lowered in _SINGLE_DOT_SEGMENTS:
            if is_last:
                output.append("")
        else:
            output.append(segment)
    return "/" + "/".join(output)


def _clean_url(url: str) -> str:
    # Browsers strip surrounding controls, drop tabs/newlines and read "\" as "/"
    url = url.strip("\x00\x01\x02\x03\x04\x05\x06\x07\x08\t\n\x0b\x0c\r\x0e\x0f"
                    "\x10\x11\x12\x13\x14\x15\x16\x17\x18\x19\x1a\x1b\x1c\x1d\x1e\x1f ")
    url = re.sub(r"[\t\n\r]", "", url)
    return url.replace("\\", "/")


def validate_redirect_url(
    url: Optional[str],
    allowed_paths: Sequence[str] = DEFAULT_ALLOWED_REDIRECT_PATHS
) -> Optional[str]:
    """
    Validate a post-login redirect target against open redirects.

    The candidate is resolved against the site's own URL. It is rejected if
    it points to another origin (including protocol-relative ``//host``
    URLs) or if its path does not start with one of allowed_paths.

    Returns:
        The normalized path, or None if the target is not allowed
    """
    if not url or not isinstance(url, str):
        return None

    site_url = get_site_url()

    try:
        site = urlsplit(site_url)
        resolved = urlsplit(urljoin(site_url, _clean_url(url)))

        if _origin(resolved) != _origin(site):
            logger.warning(f"🚫 Rejected cross-origin redirect target: {url[:100]}")
            return None
    except ValueError:
        return None

    path = quote(_remove_dot_segments(resolved.path or "/"), safe=_PATH_SAFE_CHARS)

    if not any(path.startswith(allowed) for allowed in allowed_paths):
        return None

    return path
