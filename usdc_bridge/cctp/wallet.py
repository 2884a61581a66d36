"""Signing sessions the transfer machinery runs on.

- :py:class:`WalletSession` is an account chain wallet: one address,
  a currently selected chain and transaction submission.
  :py:class:`Web3WalletSession` implements it with a local private key
  and one :py:class:`~web3.Web3` connection per chain.

- :py:class:`SolanaSigner` signs and submits instruction lists on Solana.

Both are injected into the orchestrator and adapters. Nothing in the
library reads keys from the environment.
"""

import abc
import logging
from collections.abc import Sequence

import base58
from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

from usdc_bridge.cctp.errors import SolanaKeyFormatInvalid, TransactionExecutionError, UnsupportedChain

logger = logging.getLogger(__name__)

#: How long to wait for an EVM receipt, seconds
DEFAULT_RECEIPT_TIMEOUT = 180.0


class WalletSession(abc.ABC):
    """Account chain wallet with a selected chain."""

    @property
    @abc.abstractmethod
    def address(self) -> HexAddress:
        """Signer address, same on every chain."""

    @property
    @abc.abstractmethod
    def chain_id(self) -> int:
        """Chain the wallet is currently on."""

    @property
    def is_connected(self) -> bool:
        return True

    @abc.abstractmethod
    def switch_chain(self, chain_id: int):
        """Request the wallet to move to another chain.

        :raise UnsupportedChain:
            The wallet has no connection to the chain.
        """

    @abc.abstractmethod
    def send_transaction(self, to: str, data: bytes, chain_id: int) -> str:
        """Sign, broadcast and wait for a transaction.

        :param to:
            Contract address.

        :param data:
            ABI encoded call data.

        :param chain_id:
            Chain the transaction is bound to, regardless of the selected chain.

        :return:
            ``0x`` prefixed transaction hash of a successful transaction.

        :raise TransactionExecutionError:
            Transient execution failure: revert during estimation,
            reverted receipt, RPC execution error or receipt timeout.
        """

    @abc.abstractmethod
    def get_web3(self, chain_id: int) -> Web3:
        """Read-only connection for contract calls on a chain."""


class Web3WalletSession(WalletSession):
    """Hot wallet over a set of web3 connections.

    Example::

        from eth_account import Account
        from web3 import Web3

        account = Account.from_key(os.environ["PRIVATE_KEY"])
        wallet = Web3WalletSession(
            account,
            {
                11155111: Web3(Web3.HTTPProvider(os.environ["JSON_RPC_11155111"])),
                84532: Web3(Web3.HTTPProvider(os.environ["JSON_RPC_84532"])),
            },
        )
    """

    def __init__(
        self,
        account: LocalAccount,
        web3_by_chain: dict[int, Web3],
        chain_id: int | None = None,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ):
        """
        :param account:
            Local signing account.

        :param web3_by_chain:
            One connection per supported chain.

        :param chain_id:
            Initially selected chain. Defaults to the first connection.

        :param receipt_timeout:
            Seconds to wait for each receipt.
        """
        assert web3_by_chain, "Need at least one web3 connection"
        self.account = account
        self.web3_by_chain = web3_by_chain
        self.receipt_timeout = receipt_timeout
        self._chain_id = chain_id if chain_id is not None else next(iter(web3_by_chain))
        assert self._chain_id in web3_by_chain, f"No web3 connection for initial chain {self._chain_id}"

    def __repr__(self) -> str:
        return f"<Web3WalletSession {self.account.address} on chain {self._chain_id}>"

    @property
    def address(self) -> HexAddress:
        return self.account.address

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def switch_chain(self, chain_id: int):
        if chain_id not in self.web3_by_chain:
            raise UnsupportedChain(f"Wallet has no connection for chain {chain_id}, has {sorted(self.web3_by_chain)}")
        logger.info("Wallet %s switching from chain %d to %d", self.address, self._chain_id, chain_id)
        self._chain_id = chain_id

    def get_web3(self, chain_id: int) -> Web3:
        try:
            return self.web3_by_chain[chain_id]
        except KeyError as e:
            raise UnsupportedChain(f"Wallet has no connection for chain {chain_id}") from e

    def _fill_fees(self, web3: Web3, tx: dict):
        latest = web3.eth.get_block("latest")
        base_fee = latest.get("baseFeePerGas")
        if base_fee is None:
            tx["gasPrice"] = web3.eth.gas_price
        else:
            priority_fee = web3.eth.max_priority_fee
            tx["maxPriorityFeePerGas"] = priority_fee
            tx["maxFeePerGas"] = base_fee * 2 + priority_fee

    def send_transaction(self, to: str, data: bytes, chain_id: int) -> str:
        web3 = self.get_web3(chain_id)

        tx = {
            "from": self.address,
            "to": Web3.to_checksum_address(to),
            "data": Web3.to_hex(data),
            "value": 0,
            "chainId": chain_id,
            "nonce": web3.eth.get_transaction_count(self.address, "pending"),
        }

        try:
            tx["gas"] = web3.eth.estimate_gas(tx)
            self._fill_fees(web3, tx)
            signed = self.account.sign_transaction(tx)
            tx_hash = web3.eth.send_raw_transaction(signed.raw_transaction)
            logger.debug("Broadcasted %s on chain %d, waiting for receipt", Web3.to_hex(tx_hash), chain_id)
            receipt = web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except (ContractLogicError, TimeExhausted, Web3RPCError) as e:
            raise TransactionExecutionError(f"Transaction to {to} on chain {chain_id} failed: {e}") from e

        tx_hash_hex = Web3.to_hex(tx_hash)
        if receipt["status"] != 1:
            raise TransactionExecutionError(f"Transaction {tx_hash_hex} to {to} on chain {chain_id} reverted")

        logger.info("Transaction %s confirmed on chain %d in block %d", tx_hash_hex, chain_id, receipt["blockNumber"])
        return tx_hash_hex


def load_solana_keypair(secret: str) -> Keypair:
    """Parse a Solana private key.

    Accepted forms:

    - base58 encoded 64-byte secret key (the ``solana-keygen`` export format)
    - base58 encoded 32-byte seed
    - 64 hex characters encoding a 32-byte seed, ``0x`` prefix optional

    :raise SolanaKeyFormatInvalid:
        None of the forms match.
    """
    secret = secret.strip()

    try:
        raw = base58.b58decode(secret)
    except ValueError:
        raw = None

    try:
        if raw is not None and len(raw) == 64:
            return Keypair.from_bytes(raw)
        if raw is not None and len(raw) == 32:
            return Keypair.from_seed(raw)

        hex_str = secret.removeprefix("0x")
        if len(hex_str) == 64:
            return Keypair.from_seed(bytes.fromhex(hex_str))
    except ValueError as e:
        raise SolanaKeyFormatInvalid(f"Invalid Solana private key: {e}") from e

    raise SolanaKeyFormatInvalid("Invalid Solana private key format. Expected base58 encoded key or 32-byte hex string.")


class SolanaSigner:
    """Keypair plus RPC client for submitting Solana transactions."""

    def __init__(self, keypair: Keypair, client: Client):
        self.keypair = keypair
        self.client = client

    def __repr__(self) -> str:
        return f"<SolanaSigner {self.address}>"

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())

    def send_transaction(self, instructions: Sequence[Instruction], extra_signers: Sequence[Keypair] = ()) -> str:
        """Sign with the fee payer and ``extra_signers``, submit and confirm.

        :return:
            Base58 transaction signature.

        :raise TransactionExecutionError:
            RPC rejected the transaction, simulation failed or it errored on chain.
        """
        try:
            blockhash = self.client.get_latest_blockhash(commitment=Confirmed).value.blockhash
            message = Message.new_with_blockhash(list(instructions), self.pubkey, blockhash)
            tx = Transaction([self.keypair, *extra_signers], message, blockhash)
            signature = self.client.send_transaction(tx, opts=TxOpts(preflight_commitment=Confirmed)).value
            logger.debug("Sent Solana transaction %s, confirming", signature)
            statuses = self.client.confirm_transaction(signature, commitment=Confirmed).value
        except (RPCException, SolanaRpcException, UnconfirmedTxError) as e:
            raise TransactionExecutionError(f"Solana transaction failed: {e}") from e

        status = statuses[0] if statuses else None
        if status is not None and status.err is not None:
            raise TransactionExecutionError(f"Solana transaction {signature} failed: {status.err}")

        logger.info("Solana transaction %s confirmed", signature)
        return str(signature)
