"""Bridge USDC between two chains with CCTP V2.

Approves, burns on the source chain, waits for Circle's attestation and
mints on the destination chain. Prints balances before and after.

Environment variables
---------------------
- ``SOURCE_CHAIN_ID``: Chain to burn on, e.g. ``11155111`` (required).
- ``DESTINATION_CHAIN_ID``: Chain to mint on, e.g. ``84532`` (required).
- ``AMOUNT``: USDC amount as a decimal, e.g. ``10`` or ``0.5`` (required).
- ``DESTINATION_ADDRESS``: Recipient. Defaults to our own address on the destination chain.
- ``TRANSFER_MODE``: ``fast`` (default) or ``standard``.
- ``NETWORK``: ``testnet`` (default) or ``mainnet``.
- ``PRIVATE_KEY``: EVM private key, needed when either side is an EVM chain.
- ``SOLANA_PRIVATE_KEY``: Solana key, base58 or 32-byte hex seed, needed when either side is Solana.
- ``JSON_RPC_<CHAIN_ID>``: RPC URL for each EVM chain used, e.g. ``JSON_RPC_84532``.
- ``SOLANA_RPC``: Solana RPC URL. Defaults to the public devnet/mainnet endpoint.
- ``IRIS_API_URL``: Override Circle's attestation API.
- ``LOG_LEVEL``: Logging level (default: ``info``).

Usage::

    export PRIVATE_KEY=0x...
    export JSON_RPC_11155111=https://...
    export JSON_RPC_84532=https://sepolia.base.org
    SOURCE_CHAIN_ID=11155111 DESTINATION_CHAIN_ID=84532 AMOUNT=1 poetry run python scripts/cctp/bridge-usdc.py

    # Ethereum Sepolia to Solana devnet
    SOURCE_CHAIN_ID=11155111 DESTINATION_CHAIN_ID=103 AMOUNT=1 SOLANA_PRIVATE_KEY=... poetry run python scripts/cctp/bridge-usdc.py
"""

import logging
import os

from eth_account import Account
from solana.rpc.api import Client
from tabulate import tabulate
from tqdm_loggable.auto import tqdm
from web3 import Web3

from usdc_bridge.cctp.constants import SOLANA_DEVNET_RPC, SOLANA_MAINNET_RPC
from usdc_bridge.cctp.orchestrator import TransferMode, TransferRequest, TransferState, create_orchestrator
from usdc_bridge.cctp.registry import create_mainnet_registry, create_testnet_registry
from usdc_bridge.cctp.session import create_iris_session, get_iris_api_url
from usdc_bridge.cctp.wallet import SolanaSigner, Web3WalletSession, load_solana_keypair
from usdc_bridge.utils import get_url_domain, setup_console_logging

logger = logging.getLogger(__name__)

#: Progress bar steps, one per state after idle
PROGRESS_STATES = [
    TransferState.approving,
    TransferState.burning,
    TransferState.waiting_attestation,
    TransferState.minting,
    TransferState.completed,
]


def main():
    setup_console_logging(default_log_level="info")

    network = os.environ.get("NETWORK", "testnet").lower()
    assert network in ("mainnet", "testnet"), f"NETWORK must be 'mainnet' or 'testnet', got '{network}'"
    testnet = network == "testnet"

    source_chain_id = os.environ.get("SOURCE_CHAIN_ID")
    assert source_chain_id, "SOURCE_CHAIN_ID environment variable required"
    destination_chain_id = os.environ.get("DESTINATION_CHAIN_ID")
    assert destination_chain_id, "DESTINATION_CHAIN_ID environment variable required"
    amount = os.environ.get("AMOUNT")
    assert amount, "AMOUNT environment variable required"

    transfer_mode = TransferMode(os.environ.get("TRANSFER_MODE", "fast").lower())

    registry = create_testnet_registry() if testnet else create_mainnet_registry()
    source = registry.descriptor_for(int(source_chain_id))
    destination = registry.descriptor_for(int(destination_chain_id))

    # EVM wallet over all account chains taking part
    wallet = None
    evm_chains = [d for d in (source, destination) if not d.is_program_chain]
    if evm_chains:
        private_key = os.environ.get("PRIVATE_KEY")
        assert private_key, "PRIVATE_KEY environment variable required for EVM chains"
        web3_by_chain = {}
        for descriptor in evm_chains:
            rpc_url = os.environ.get(f"JSON_RPC_{descriptor.chain_id}")
            assert rpc_url, f"JSON_RPC_{descriptor.chain_id} environment variable required for {descriptor.name}"
            web3_by_chain[descriptor.chain_id] = Web3(Web3.HTTPProvider(rpc_url))
            print(f"{descriptor.name} RPC: {get_url_domain(rpc_url)}")
        wallet = Web3WalletSession(Account.from_key(private_key), web3_by_chain)

    solana_signer = None
    if source.is_program_chain or destination.is_program_chain:
        solana_key = os.environ.get("SOLANA_PRIVATE_KEY")
        assert solana_key, "SOLANA_PRIVATE_KEY environment variable required for Solana"
        solana_rpc = os.environ.get("SOLANA_RPC", SOLANA_DEVNET_RPC if testnet else SOLANA_MAINNET_RPC)
        solana_signer = SolanaSigner(load_solana_keypair(solana_key), Client(solana_rpc))
        print(f"Solana RPC: {get_url_domain(solana_rpc)}")

    iris_api_url = os.environ.get("IRIS_API_URL", get_iris_api_url(testnet))
    orchestrator = create_orchestrator(
        registry,
        create_iris_session(iris_api_url),
        wallet=wallet,
        solana_signer=solana_signer,
    )

    request = TransferRequest(
        source_chain_id=source.chain_id,
        destination_chain_id=destination.chain_id,
        amount=amount,
        destination_address=os.environ.get("DESTINATION_ADDRESS"),
        transfer_mode=transfer_mode,
    )

    print(f"Network: {network}")
    print(f"Iris API: {iris_api_url}")
    print(f"Bridging {amount} USDC {source.name} (domain {source.bridge_domain}) -> {destination.name} (domain {destination.bridge_domain}), {transfer_mode.value}")

    balances_before = {d.chain_id: orchestrator.get_balance(d.chain_id) for d in (source, destination)}

    progress_bar = tqdm(total=len(PROGRESS_STATES), desc="CCTP transfer", unit="step")

    def _on_state_change(old: TransferState, new: TransferState):
        if new in PROGRESS_STATES:
            progress_bar.update(1)
        progress_bar.set_description(f"CCTP {new.value}")

    orchestrator.on_state_change(_on_state_change)
    orchestrator.on_log(lambda entry: progress_bar.set_postfix_str(entry.message[:60]))

    try:
        result = orchestrator.execute_transfer(request)
    finally:
        progress_bar.close()

    rows = [
        [d.name, balances_before[d.chain_id], orchestrator.get_balance(d.chain_id)]
        for d in (source, destination)
    ]
    print("\nUSDC balances:")
    print(tabulate(rows, headers=["Chain", "Before", "After"], tablefmt="simple"))

    print("\nTransactions:")
    print(
        tabulate(
            [
                ["Approve", result.approve_tx_hash],
                ["Burn", result.burn_tx_hash],
                ["Mint", result.mint_tx_hash],
                ["Mint attempts", result.mint_attempts],
            ],
            tablefmt="simple",
        )
    )


if __name__ == "__main__":
    main()
