"""
Base utilities for the vesting API blueprint

Provides request context access and consistent response helpers.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Tuple

from flask import g, jsonify, request

from tokenvest.core.exceptions import (
    AuthorizationError,
    CollaboratorError,
    NoSchedulesError,
    StorageError,
    VaultStateError,
    VaultValidationError,
    VestingError,
)

logger = logging.getLogger(__name__)


def get_api_context() -> Dict[str, Any]:
    """Get the API context (vault, repository, config) stored on ``g``."""
    return g.get("api_context", {})


def get_vault() -> Any:
    return get_api_context().get("vault")


def get_repository() -> Optional[Any]:
    return get_api_context().get("repository")


def get_caller() -> str:
    """Caller address taken from the configured identity header."""
    header = get_api_context().get("caller_header", "X-Caller-Address")
    return request.headers.get(header, "").strip()


@contextmanager
def persisted_mutation() -> Iterator[Any]:
    """
    Yield the vault for one mutation, then save it.

    Without a repository the vault is only changed in memory. When the save
    fails the in-memory vault is rolled back to its state before the
    mutation and the ``StorageError`` propagates to the error handler.
    """
    vault = get_vault()
    repository = get_repository()
    if repository is None:
        yield vault
        return

    checkpoint = repository.checkpoint(vault)
    yield vault
    try:
        repository.save(vault)
    except StorageError:
        repository.rollback(vault, checkpoint)
        logger.error(
            "Vault save failed; mutation rolled back",
            extra={"event": "api.save_failed", "path": request.path},
        )
        raise


def parse_int(value: Any) -> Any:
    """Accept integers or decimal strings; anything else is returned untouched for validation."""
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


def success_response(payload: Dict[str, Any], status: int = 200) -> Tuple[Any, int]:
    """Return a success payload with consistent structure."""
    body = {"success": True, **payload}
    return jsonify(body), status


def error_response(
    message: str,
    status: int = 400,
    code: str = "bad_request",
    context: Optional[Dict[str, Any]] = None,
) -> Tuple[Any, int]:
    """Return an error payload and log it."""
    log = logger.error if status >= 500 else logger.warning
    log(
        "Vesting API error",
        extra={"event": "api.error", "code": code, "status": status, "details": context or {}},
    )
    body: Dict[str, Any] = {"success": False, "error": message, "code": code}
    if context:
        body["details"] = context
    return jsonify(body), status


def status_for(error: VestingError) -> int:
    if isinstance(error, VaultValidationError):
        return 400
    if isinstance(error, AuthorizationError):
        return 403
    if isinstance(error, NoSchedulesError):
        return 404
    if isinstance(error, VaultStateError):
        return 409
    if isinstance(error, CollaboratorError):
        return 502
    return 500


def vesting_error_response(error: VestingError) -> Tuple[Any, int]:
    """Map a vault exception onto an HTTP error response."""
    return error_response(
        error.message,
        status=status_for(error),
        code=error.code,
        context=error.details,
    )
