"""
Vesting API Blueprint

Handles schedule queries, claims and administrative vault operations.
The caller is identified by the configured identity header; privileged
routes are gated by the vault itself.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Tuple

from flask import Blueprint, request

from tokenvest.api.base import (
    error_response,
    get_caller,
    get_vault,
    parse_int,
    persisted_mutation,
    success_response,
    vesting_error_response,
)
from tokenvest.core.exceptions import VestingError

logger = logging.getLogger(__name__)

vesting_bp = Blueprint("vesting", __name__, url_prefix="/vesting")

BATCH_FIELDS = ("beneficiaries", "total_amounts", "upfront_percents", "cliff_times", "ramp_ends")


@vesting_bp.errorhandler(VestingError)
def handle_vesting_error(error: VestingError) -> Tuple[Any, int]:
    return vesting_error_response(error)


@vesting_bp.route("/status", methods=["GET"])
def vault_status() -> Tuple[Dict[str, Any], int]:
    """Administrator, recovery account and custody solvency."""
    vault = get_vault()
    return success_response(
        {
            "administrator": vault.administrator,
            "recovery_account": vault.recovery_account,
            "custody_address": vault.custody_address,
            "beneficiaries": len(vault.store.beneficiaries()),
            "schedules": len(vault.store),
            "solvency": vault.check_solvency(),
        }
    )


@vesting_bp.route("/schedules/<beneficiary>", methods=["GET"])
def list_schedules(beneficiary: str) -> Tuple[Dict[str, Any], int]:
    vault = get_vault()
    at = request.args.get("at", default=None, type=int)
    schedules = vault.get_schedules(beneficiary)
    claimables = vault.preview_schedule_claimables(beneficiary, at)
    return success_response(
        {
            "beneficiary": beneficiary.lower(),
            "schedules": [
                {**schedule.to_dict(), "index": index, "claimable": claimable}
                for index, (schedule, claimable) in enumerate(zip(schedules, claimables))
            ],
            "summary": vault.beneficiary_summary(beneficiary, at),
        }
    )


@vesting_bp.route("/claimable/<beneficiary>", methods=["GET"])
def preview_claimable(beneficiary: str) -> Tuple[Dict[str, Any], int]:
    vault = get_vault()
    at = request.args.get("at", default=None, type=int)
    return success_response(
        {
            "beneficiary": beneficiary.lower(),
            "claimable": vault.preview_claimable(beneficiary, at),
        }
    )


@vesting_bp.route("/claim", methods=["POST"])
def claim() -> Tuple[Dict[str, Any], int]:
    """Claim everything unlocked for the calling beneficiary."""
    caller = get_caller()
    if not caller:
        return error_response("Caller address header required", status=401, code="missing_caller")

    with persisted_mutation() as vault:
        amount = vault.claim(caller)
    return success_response({"beneficiary": caller.lower(), "amount": amount})


@vesting_bp.route("/schedules", methods=["POST"])
def create_schedule() -> Tuple[Dict[str, Any], int]:
    caller = get_caller()
    if not caller:
        return error_response("Caller address header required", status=401, code="missing_caller")

    payload = request.get_json(silent=True) or {}
    missing = [
        key
        for key in ("beneficiary", "total_amount", "upfront_percent", "cliff_time", "ramp_end")
        if key not in payload
    ]
    if missing:
        return error_response(
            "Missing required fields",
            status=400,
            code="invalid_payload",
            context={"missing": missing},
        )

    with persisted_mutation() as vault:
        index = vault.create_schedule(
            caller,
            payload["beneficiary"],
            parse_int(payload["total_amount"]),
            parse_int(payload["upfront_percent"]),
            parse_int(payload["cliff_time"]),
            parse_int(payload["ramp_end"]),
        )
    return success_response(
        {"beneficiary": str(payload["beneficiary"]).lower(), "index": index},
        status=201,
    )


@vesting_bp.route("/schedules/batch", methods=["POST"])
def create_schedules_batch() -> Tuple[Dict[str, Any], int]:
    caller = get_caller()
    if not caller:
        return error_response("Caller address header required", status=401, code="missing_caller")

    payload = request.get_json(silent=True) or {}
    if not all(isinstance(payload.get(key), list) for key in BATCH_FIELDS):
        return error_response(
            "Batch fields must all be lists",
            status=400,
            code="invalid_payload",
            context={"fields": list(BATCH_FIELDS)},
        )

    with persisted_mutation() as vault:
        indices = vault.create_schedules_batch(
            caller,
            payload["beneficiaries"],
            [parse_int(v) for v in payload["total_amounts"]],
            [parse_int(v) for v in payload["upfront_percents"]],
            [parse_int(v) for v in payload["cliff_times"]],
            [parse_int(v) for v in payload["ramp_ends"]],
        )
    return success_response({"indices": indices, "count": len(indices)}, status=201)


@vesting_bp.route("/recover", methods=["POST"])
def recover() -> Tuple[Dict[str, Any], int]:
    caller = get_caller()
    if not caller:
        return error_response("Caller address header required", status=401, code="missing_caller")

    payload = request.get_json(silent=True) or {}
    beneficiary = str(payload.get("beneficiary", "")).strip()
    if not beneficiary:
        return error_response("beneficiary is required", status=400, code="invalid_payload")

    with persisted_mutation() as vault:
        amount = vault.recover(caller, beneficiary)
    return success_response(
        {
            "beneficiary": beneficiary.lower(),
            "recovery_account": vault.recovery_account,
            "amount": amount,
        }
    )


@vesting_bp.route("/recovery-account", methods=["POST"])
def set_recovery_account() -> Tuple[Dict[str, Any], int]:
    caller = get_caller()
    if not caller:
        return error_response("Caller address header required", status=401, code="missing_caller")

    payload = request.get_json(silent=True) or {}
    with persisted_mutation() as vault:
        account = vault.set_recovery_account(caller, str(payload.get("account", "")))
    return success_response({"recovery_account": account})


@vesting_bp.route("/administrator", methods=["POST"])
def transfer_administrator() -> Tuple[Dict[str, Any], int]:
    caller = get_caller()
    if not caller:
        return error_response("Caller address header required", status=401, code="missing_caller")

    payload = request.get_json(silent=True) or {}
    with persisted_mutation() as vault:
        administrator = vault.transfer_administrator(
            caller, str(payload.get("administrator", ""))
        )
    return success_response({"administrator": administrator})
