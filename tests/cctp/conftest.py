"""CCTP test fixtures."""

import pytest

from usdc_bridge.cctp.attestation import AttestationPoller
from usdc_bridge.cctp.orchestrator import TransferConfig, TransferOrchestrator
from usdc_bridge.cctp.registry import ChainRegistry, create_testnet_registry

from tests.cctp.fakes import (
    ETHEREUM_SEPOLIA,
    FakeAdapter,
    FakeIrisSession,
    FakeWalletSession,
    RecordingSleep,
    complete_payload,
    make_response,
)


@pytest.fixture()
def registry() -> ChainRegistry:
    return create_testnet_registry()


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def wallet() -> FakeWalletSession:
    return FakeWalletSession(chain_id=ETHEREUM_SEPOLIA)


@pytest.fixture()
def adapters() -> dict[int, FakeAdapter]:
    """Fake adapter per chain, created on first use."""
    return {}


@pytest.fixture()
def adapter_factory(adapters):
    def _factory(descriptor):
        if descriptor.chain_id not in adapters:
            adapters[descriptor.chain_id] = FakeAdapter(descriptor)
        return adapters[descriptor.chain_id]

    return _factory


@pytest.fixture()
def iris_session() -> FakeIrisSession:
    """Attestation complete on the first poll."""
    return FakeIrisSession([make_response(200, complete_payload())])


@pytest.fixture()
def orchestrator(registry, adapter_factory, iris_session, wallet, recording_sleep) -> TransferOrchestrator:
    poller = AttestationPoller(iris_session, registry, sleep=recording_sleep)
    return TransferOrchestrator(
        registry=registry,
        adapter_factory=adapter_factory,
        poller=poller,
        wallet=wallet,
        config=TransferConfig(),
        sleep=recording_sleep,
    )
