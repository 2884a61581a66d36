"""Network-free fakes for CCTP transfer tests."""

import json

import requests
from web3 import Web3

from usdc_bridge.cctp.adapter import NOOP_APPROVAL, ChainAdapter
from usdc_bridge.cctp.address import pad_address_to_bytes32
from usdc_bridge.cctp.attestation import Attestation
from usdc_bridge.cctp.errors import TransactionExecutionError, UnsupportedChain
from usdc_bridge.cctp.session import IrisSession
from usdc_bridge.cctp.wallet import WalletSession

ETHEREUM_SEPOLIA = 11155111

BASE_SEPOLIA = 84532

SOLANA_DEVNET = 103

#: Our EVM signer in the tests
OWNER = "0x9876543210987654321098765432109876543210"

BURN_TX_HASH = "0x" + "ab" * 32


def make_response(status_code: int, payload: dict | None = None, url: str = "https://iris-api-sandbox.circle.com/v2/messages") -> requests.Response:
    """Real :py:class:`requests.Response` without a network."""
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response.reason = "OK" if status_code < 400 else "Error"
    response._content = json.dumps(payload).encode() if payload is not None else b""
    return response


def build_message(
    source_domain: int = 0,
    destination_domain: int = 6,
    nonce: bytes = b"\x07" * 32,
    mint_recipient: bytes = b"\x00" * 12 + b"\x11" * 20,
    amount: int = 10_000_000,
    max_fee: int = 9_999_999,
    min_finality_threshold: int = 1000,
) -> bytes:
    """Pack a CCTP V2 burn message."""
    header = (
        (1).to_bytes(4, "big")
        + source_domain.to_bytes(4, "big")
        + destination_domain.to_bytes(4, "big")
        + nonce
        + b"\x01" * 32
        + b"\x02" * 32
        + b"\x00" * 32
        + min_finality_threshold.to_bytes(4, "big")
        + min_finality_threshold.to_bytes(4, "big")
    )
    body = (
        (1).to_bytes(4, "big")
        + b"\x03" * 32
        + mint_recipient
        + amount.to_bytes(32, "big")
        + b"\x04" * 32
        + max_fee.to_bytes(32, "big")
        + (0).to_bytes(32, "big")
        + (0).to_bytes(32, "big")
    )
    return header + body


def complete_payload(message: bytes | None = None, attestation: bytes = b"\xaa" * 65) -> dict:
    message = message if message is not None else build_message()
    return {
        "messages": [
            {
                "status": "complete",
                "message": "0x" + message.hex(),
                "attestation": "0x" + attestation.hex(),
                "eventNonce": "0x" + "07" * 32,
                "cctpVersion": 2,
            }
        ]
    }


def pending_payload() -> dict:
    return {"messages": [{"status": "pending_confirmations", "message": "0x", "attestation": "PENDING"}]}


class FakeIrisSession(IrisSession):
    """Serve queued responses. The last one repeats forever."""

    def __init__(self, responses: list):
        super().__init__(api_url="https://iris-api-sandbox.circle.com")
        self.responses = list(responses)
        self.requested_urls = []

    def get(self, url, **kwargs):
        self.requested_urls.append(url)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


class RecordingSleep:
    """Record sleeps instead of waiting."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds: float):
        self.calls.append(seconds)


class FakeWalletSession(WalletSession):
    """EVM wallet recording switches and transactions."""

    def __init__(self, chain_id: int = ETHEREUM_SEPOLIA, address: str = OWNER, web3: Web3 | None = None):
        self._address = Web3.to_checksum_address(address)
        self._chain_id = chain_id
        self.web3 = web3
        self.switches = []
        self.transactions = []

    @property
    def address(self):
        return self._address

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def switch_chain(self, chain_id: int):
        self.switches.append(chain_id)
        self._chain_id = chain_id

    def send_transaction(self, to: str, data: bytes, chain_id: int) -> str:
        self.transactions.append((to, data, chain_id))
        return "0x" + f"{len(self.transactions):064x}"

    def get_web3(self, chain_id: int) -> Web3:
        if self.web3 is None:
            raise UnsupportedChain(f"No web3 for {chain_id}")
        return self.web3


class FakeAdapter(ChainAdapter):
    """Adapter whose steps always succeed, except for scripted mint failures."""

    def __init__(self, descriptor, owner: str = OWNER, mint_failures: int = 0, balance: str = "100"):
        super().__init__(descriptor)
        self._owner = owner
        self.mint_failures = mint_failures
        self.balance = balance
        self.approvals = []
        self.burns = []
        self.mint_attempts = 0
        self.approve_error: Exception | None = None

    @property
    def owner_address(self) -> str:
        return self._owner

    def get_balance(self, owner: str | None = None) -> str:
        return self.balance

    def approve(self, spender: str, amount: int) -> str:
        if self.approve_error is not None:
            raise self.approve_error
        self.approvals.append((spender, amount))
        if self.descriptor.is_program_chain:
            return NOOP_APPROVAL
        return "0xapprove"

    def burn(self, amount, destination_domain, mint_recipient, max_fee, finality_threshold) -> str:
        self.burns.append(
            {
                "amount": amount,
                "destination_domain": destination_domain,
                "mint_recipient": mint_recipient,
                "max_fee": max_fee,
                "finality_threshold": finality_threshold,
            }
        )
        return BURN_TX_HASH

    def mint(self, attestation: Attestation) -> str:
        self.mint_attempts += 1
        if self.mint_attempts <= self.mint_failures:
            raise TransactionExecutionError(f"execution reverted (attempt {self.mint_attempts})")
        return "0xmint"

    def encode_mint_recipient(self, address: str) -> bytes:
        return pad_address_to_bytes32(address)
