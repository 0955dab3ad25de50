"""
HTTP client for the svm-htlc service.

Signs instructions locally with the caller's keypair and posts them; the
service verifies the signature before executing.
"""

import logging
from typing import Any, Dict, List, Optional, Union

import httpx

from .core import bytes_to_hex, format_evm_address
from .errors import ClientError, ClientErrorCode
from .ledger.keys import Keypair, Pubkey
from .program import CreateHTLCParams
from .signing import sign_instruction

log = logging.getLogger(__name__)

PubkeyLike = Union[Pubkey, str]


class HTLCApiClient:
    """
    svm-htlc REST client.

    Args:
        base_url: Service root, e.g. http://127.0.0.1:8080
        client: Pre-built httpx.Client (base_url already set) to use instead
        timeout: Request timeout in seconds
    """

    def __init__(self, base_url: str = "http://127.0.0.1:8080",
                 client: Optional[httpx.Client] = None, timeout: float = 10.0):
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self):
        if self._owns_client:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # =========================================================================
    # Transport
    # =========================================================================

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise ClientError(f"Request to {path} failed: {e}", ClientErrorCode.CONNECTION_FAILED) from e

        if response.status_code >= 400:
            raise self._error_from_response(path, response)
        return response.json()

    @staticmethod
    def _error_from_response(path: str, response: httpx.Response) -> ClientError:
        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}

        message = body.get("message") or body.get("detail") or response.reason_phrase
        if response.status_code == 401:
            code = ClientErrorCode.UNAUTHORIZED
        elif isinstance(body.get("code"), int):
            code = ClientErrorCode.PROGRAM_ERROR
        elif response.status_code == 404:
            code = ClientErrorCode.INVALID_ACCOUNT
        else:
            code = ClientErrorCode.TRANSACTION_FAILED

        log.warning(f"{path} -> {response.status_code}: {message}")
        return ClientError(f"{path}: {message}", code, details=body)

    def _signed_post(self, path: str, instruction: str, keypair: Keypair,
                     payload: Dict[str, Any]) -> Dict[str, Any]:
        payload = dict(payload)
        payload["signer"] = str(keypair.pubkey)
        payload["signature"] = sign_instruction(keypair, instruction, payload)
        return self._request("POST", path, json=payload)

    # =========================================================================
    # Reads
    # =========================================================================

    def status(self) -> Dict[str, Any]:
        return self._request("GET", "/api/status")

    def get_htlc(self, htlc_id: Union[bytes, str]) -> Optional[Dict[str, Any]]:
        """HTLC state, or None if no HTLC exists for the id."""
        if isinstance(htlc_id, bytes):
            htlc_id = htlc_id.hex()
        try:
            return self._request("GET", f"/api/htlc/{htlc_id}")
        except ClientError as e:
            if e.code == ClientErrorCode.INVALID_ACCOUNT:
                return None
            raise

    def get_htlc_address(self, htlc_id: Union[bytes, str]) -> str:
        if isinstance(htlc_id, bytes):
            htlc_id = htlc_id.hex()
        return self._request("GET", f"/api/htlc/{htlc_id}/address")["htlc_address"]

    def list_htlcs(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"status": status} if status else None
        return self._request("GET", "/api/htlcs", params=params)["htlcs"]

    def events(self, since: int = 0) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/events", params={"since": since})["events"]

    def balance(self, pubkey: PubkeyLike, mint: Optional[PubkeyLike] = None) -> Dict[str, Any]:
        params = {"mint": str(mint)} if mint else None
        return self._request("GET", f"/api/balance/{pubkey}", params=params)

    # =========================================================================
    # Instructions
    # =========================================================================

    def create_htlc(self, keypair: Keypair, params: CreateHTLCParams,
                    token_mint: PubkeyLike) -> Dict[str, Any]:
        """
        Lock tokens as `keypair` (the resolver).

        Returns:
            {"htlc_address": ..., "transaction_hash": ..., "slot": ...}
        """
        payload = {
            "htlc_id": params.htlc_id.hex(),
            "dst_address": format_evm_address(params.dst_address),
            "dst_token": format_evm_address(params.dst_token),
            "amount": params.amount,
            "safety_deposit": params.safety_deposit,
            "hashlock": params.hashlock.hex(),
            "finality_deadline": params.finality_deadline,
            "resolver_deadline": params.resolver_deadline,
            "public_deadline": params.public_deadline,
            "cancellation_deadline": params.cancellation_deadline,
            "token_mint": str(token_mint),
        }
        return self._signed_post("/api/htlc/create", "create_htlc", keypair, payload)

    def withdraw(self, keypair: Keypair, htlc_address: PubkeyLike, preimage: bytes,
                 destination_token_account: Optional[PubkeyLike] = None) -> Dict[str, Any]:
        payload = {
            "htlc_address": str(htlc_address),
            "preimage": bytes_to_hex(preimage),
            "destination_token_account": (
                str(destination_token_account) if destination_token_account else None
            ),
        }
        return self._signed_post("/api/htlc/withdraw", "withdraw", keypair, payload)

    def cancel(self, keypair: Keypair, htlc_address: PubkeyLike,
               source_identity: PubkeyLike) -> Dict[str, Any]:
        payload = {
            "htlc_address": str(htlc_address),
            "source_identity": str(source_identity),
        }
        return self._signed_post("/api/htlc/cancel", "cancel", keypair, payload)

    # =========================================================================
    # Devnet
    # =========================================================================

    def airdrop(self, pubkey: PubkeyLike, lamports: int) -> Dict[str, Any]:
        return self._request("POST", "/api/devnet/airdrop",
                             json={"pubkey": str(pubkey), "lamports": lamports})

    def devnet_mint(self) -> Dict[str, Any]:
        return self._request("GET", "/api/devnet/mint")

    def mint_tokens(self, owner: PubkeyLike, amount: int) -> Dict[str, Any]:
        return self._request("POST", "/api/devnet/mint",
                             json={"owner": str(owner), "amount": amount})

    def advance_clock(self, seconds: int) -> int:
        return self._request("POST", "/api/devnet/clock/advance",
                             json={"seconds": seconds})["unix_timestamp"]
