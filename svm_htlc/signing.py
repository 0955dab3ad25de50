"""
Caller authentication for the HTTP service.

A request carries the signer pubkey and an Ed25519 signature (base58) over
the canonical JSON of the instruction: every request field except the
signature, plus the instruction name, keys sorted, no whitespace.
"""

import json
from typing import Any, Dict

import base58

from .errors import ClientError, ClientErrorCode
from .ledger.keys import Keypair, Pubkey, verify_signature


def instruction_message(instruction: str, payload: Dict[str, Any]) -> bytes:
    body = dict(payload)
    body["instruction"] = instruction
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")


def sign_instruction(keypair: Keypair, instruction: str, payload: Dict[str, Any]) -> str:
    """Base58 signature for `payload`, which must include "signer"."""
    return base58.b58encode(keypair.sign(instruction_message(instruction, payload))).decode("ascii")


def verify_instruction(instruction: str, payload: Dict[str, Any], signature: str) -> Pubkey:
    """
    Check the signature on a request.

    Returns:
        The authenticated signer

    Raises:
        ClientError(SOL_UNAUTHORIZED): malformed signer / signature, or mismatch
    """
    try:
        signer = Pubkey(payload["signer"])
        raw_signature = base58.b58decode(signature)
    except (KeyError, ValueError) as e:
        raise ClientError(f"Malformed signer or signature: {e}", ClientErrorCode.UNAUTHORIZED) from e

    if not verify_signature(signer, instruction_message(instruction, payload), raw_signature):
        raise ClientError(f"Invalid signature for {instruction} by {signer}", ClientErrorCode.UNAUTHORIZED)
    return signer
