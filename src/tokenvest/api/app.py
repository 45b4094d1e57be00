"""
Flask application factory for the vesting API.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from flask import Flask, g

from tokenvest.api.base import error_response
from tokenvest.api.vesting_bp import vesting_bp
from tokenvest.config_manager import ConfigManager
from tokenvest.core.vault import VestingVault
from tokenvest.database.vault_repository import VaultRepository

logger = logging.getLogger(__name__)


def create_app(
    vault: VestingVault,
    repository: Optional[VaultRepository] = None,
    config: Optional[ConfigManager] = None,
) -> Flask:
    """
    Build the API application around an existing vault.

    Args:
        vault: Vault served by the API
        repository: When given, the vault is saved after every successful mutation
        config: Source of the caller identity header name
    """
    app = Flask(__name__)
    caller_header = config.api.caller_header if config else "X-Caller-Address"
    api_context: Dict[str, Any] = {
        "vault": vault,
        "repository": repository,
        "caller_header": caller_header,
    }

    @app.before_request
    def _bind_context() -> None:
        g.api_context = api_context

    @app.route("/health", methods=["GET"])
    def health():
        return {"status": "healthy", "schedules": len(vault.store)}, 200

    @app.errorhandler(404)
    def _not_found(_error):
        return error_response("Not found", status=404, code="not_found")

    @app.errorhandler(405)
    def _method_not_allowed(_error):
        return error_response("Method not allowed", status=405, code="method_not_allowed")

    app.register_blueprint(vesting_bp)
    logger.info(
        "Vesting API initialized",
        extra={"event": "api.initialized", "persistent": repository is not None},
    )
    return app
