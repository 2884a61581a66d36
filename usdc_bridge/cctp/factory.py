"""Build chain adapters for transfer sides."""

import logging

from usdc_bridge.cctp.adapter import ChainAdapter
from usdc_bridge.cctp.errors import WalletNotConnected
from usdc_bridge.cctp.evm import EVMChainAdapter
from usdc_bridge.cctp.registry import ChainDescriptor, ChainRegistry
from usdc_bridge.cctp.solana import SolanaChainAdapter
from usdc_bridge.cctp.wallet import SolanaSigner, WalletSession

logger = logging.getLogger(__name__)


class ChainAdapterFactory:
    """Pick the adapter implementation by chain family.

    Either signer may be omitted when no transfer touches that family.
    """

    def __init__(
        self,
        registry: ChainRegistry,
        wallet: WalletSession | None = None,
        solana_signer: SolanaSigner | None = None,
    ):
        self.registry = registry
        self.wallet = wallet
        self.solana_signer = solana_signer

    def __call__(self, descriptor: ChainDescriptor) -> ChainAdapter:
        """
        :raise WalletNotConnected:
            No signer for the chain family.
        """
        if descriptor.is_program_chain:
            if self.solana_signer is None:
                raise WalletNotConnected(f"No Solana signer configured for {descriptor.name}")
            return SolanaChainAdapter(descriptor, self.solana_signer, self.registry)

        if self.wallet is None or not self.wallet.is_connected:
            raise WalletNotConnected(f"No EVM wallet connected for {descriptor.name}")
        return EVMChainAdapter(descriptor, self.wallet)
