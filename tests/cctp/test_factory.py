"""Adapter selection by chain family."""

from unittest.mock import MagicMock

import pytest
from solders.keypair import Keypair

from usdc_bridge.cctp.errors import WalletNotConnected
from usdc_bridge.cctp.evm import EVMChainAdapter
from usdc_bridge.cctp.factory import ChainAdapterFactory
from usdc_bridge.cctp.orchestrator import TransferConfig, create_orchestrator
from usdc_bridge.cctp.solana import SolanaChainAdapter
from usdc_bridge.cctp.wallet import SolanaSigner

from tests.cctp.fakes import BASE_SEPOLIA, SOLANA_DEVNET, FakeIrisSession, FakeWalletSession, make_response


def test_factory_picks_adapter(registry):
    factory = ChainAdapterFactory(registry, wallet=FakeWalletSession(), solana_signer=SolanaSigner(Keypair(), MagicMock()))
    assert isinstance(factory(registry.descriptor_for(BASE_SEPOLIA)), EVMChainAdapter)
    assert isinstance(factory(registry.descriptor_for(SOLANA_DEVNET)), SolanaChainAdapter)


def test_factory_missing_signer(registry):
    """A transfer side without a signer cannot be driven."""
    with pytest.raises(WalletNotConnected):
        ChainAdapterFactory(registry)(registry.descriptor_for(BASE_SEPOLIA))

    with pytest.raises(WalletNotConnected):
        ChainAdapterFactory(registry, wallet=FakeWalletSession())(registry.descriptor_for(SOLANA_DEVNET))


def test_create_orchestrator(registry):
    """Standard wiring passes the poll interval on."""
    orchestrator = create_orchestrator(
        registry,
        FakeIrisSession([make_response(404)]),
        wallet=FakeWalletSession(),
        config=TransferConfig(poll_interval=1.5),
    )
    assert orchestrator.poller.poll_interval == 1.5
    assert isinstance(orchestrator.adapter_factory, ChainAdapterFactory)
