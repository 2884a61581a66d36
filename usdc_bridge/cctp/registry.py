"""CCTP chain registry.

Maps chain ids to their CCTP deployment: chain family, bridge domain,
USDC token and the TokenMessengerV2 / MessageTransmitterV2 contracts
(program ids on Solana).

CCTP uses its own domain identifiers, not EVM chain IDs. Inside one
registry both chain ids and domains are unique, so translating between
the two is always unambiguous.

Example::

    from usdc_bridge.cctp.registry import create_testnet_registry

    registry = create_testnet_registry()
    base_sepolia = registry.descriptor_for(84532)
    assert base_sepolia.bridge_domain == 6
"""

import enum
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from usdc_bridge.cctp.constants import (
    MAINNET_DEPLOYMENTS,
    MESSAGE_TRANSMITTER_V2,
    MESSAGE_TRANSMITTER_V2_TESTNET,
    SOLANA_MAINNET_CHAIN_ID,
    SOLANA_DEVNET_CHAIN_ID,
    SOLANA_MESSAGE_TRANSMITTER_V2,
    SOLANA_TOKEN_MESSENGER_MINTER_V2,
    TESTNET_DEPLOYMENTS,
    TOKEN_MESSENGER_V2,
    TOKEN_MESSENGER_V2_TESTNET,
    USDC_DECIMALS,
)
from usdc_bridge.cctp.errors import UnsupportedChain

logger = logging.getLogger(__name__)


class ChainKind(enum.Enum):
    """Chain family, decides which adapter drives the chain."""

    #: EVM chains: contract calls, ERC-20 allowance model
    account_chain = "account_chain"

    #: Solana: programs, derived addresses and explicit account lists
    program_chain = "program_chain"


@dataclass(slots=True, frozen=True)
class ChainDescriptor:
    """CCTP deployment on a single chain."""

    #: EVM chain id, or the Solana cluster number
    chain_id: int

    #: Human readable name, e.g. ``"Base Sepolia"``
    name: str

    #: Chain family
    kind: ChainKind

    #: CCTP domain id
    bridge_domain: int

    #: USDC token contract (EVM) or mint (Solana)
    token_address: str

    #: TokenMessengerV2 contract, or TokenMessengerMinterV2 program on Solana.
    #:
    #: ``depositForBurn`` is called here.
    burn_contract_address: str

    #: MessageTransmitterV2 contract or program.
    #:
    #: ``receiveMessage`` is called here.
    mint_contract_address: str

    #: USDC decimals
    decimals: int = USDC_DECIMALS

    #: Testnet deployment
    testnet: bool = False

    @property
    def is_program_chain(self) -> bool:
        return self.kind == ChainKind.program_chain


class ChainRegistry:
    """Read-only lookup of :py:class:`ChainDescriptor` entries.

    Must be fully populated before a transfer starts.
    """

    def __init__(self, descriptors: Iterable[ChainDescriptor]):
        self._by_chain_id: dict[int, ChainDescriptor] = {}
        self._by_domain: dict[int, ChainDescriptor] = {}

        for descriptor in descriptors:
            assert descriptor.chain_id not in self._by_chain_id, f"Duplicate chain id {descriptor.chain_id}"
            existing = self._by_domain.get(descriptor.bridge_domain)
            assert existing is None, f"Bridge domain {descriptor.bridge_domain} used by both {existing.name} and {descriptor.name}"
            self._by_chain_id[descriptor.chain_id] = descriptor
            self._by_domain[descriptor.bridge_domain] = descriptor

    def __repr__(self) -> str:
        return f"<ChainRegistry chains={sorted(self._by_chain_id)}>"

    def __iter__(self) -> Iterator[ChainDescriptor]:
        return iter(self._by_chain_id.values())

    def __len__(self) -> int:
        return len(self._by_chain_id)

    def __contains__(self, chain_id: int) -> bool:
        return chain_id in self._by_chain_id

    def descriptor_for(self, chain_id: int) -> ChainDescriptor:
        """Look up a chain.

        :raise UnsupportedChain:
            Chain id is not registered
        """
        try:
            return self._by_chain_id[chain_id]
        except KeyError as e:
            raise UnsupportedChain(f"Chain {chain_id} is not CCTP-enabled in this registry, supported: {sorted(self._by_chain_id)}") from e

    def descriptor_for_domain(self, domain: int) -> ChainDescriptor:
        """Look up a chain by its CCTP domain.

        :raise UnsupportedChain:
            No registered chain uses the domain
        """
        try:
            return self._by_domain[domain]
        except KeyError as e:
            raise UnsupportedChain(f"No chain with CCTP domain {domain} in this registry") from e

    def bridge_domain_for(self, chain_id: int) -> int:
        """Translate a chain id to its CCTP domain."""
        return self.descriptor_for(chain_id).bridge_domain

    def chain_id_for_domain(self, domain: int) -> int:
        """Translate a CCTP domain to the chain id."""
        return self.descriptor_for_domain(domain).chain_id


def _build_descriptors(
    deployments: dict[int, tuple[str, int, str]],
    solana_chain_id: int,
    token_messenger: str,
    message_transmitter: str,
    testnet: bool,
) -> list[ChainDescriptor]:
    descriptors = []
    for chain_id, (name, domain, usdc) in deployments.items():
        if chain_id == solana_chain_id:
            kind = ChainKind.program_chain
            burn_contract = SOLANA_TOKEN_MESSENGER_MINTER_V2
            mint_contract = SOLANA_MESSAGE_TRANSMITTER_V2
        else:
            kind = ChainKind.account_chain
            burn_contract = token_messenger
            mint_contract = message_transmitter

        descriptors.append(
            ChainDescriptor(
                chain_id=chain_id,
                name=name,
                kind=kind,
                bridge_domain=domain,
                token_address=usdc,
                burn_contract_address=burn_contract,
                mint_contract_address=mint_contract,
                testnet=testnet,
            )
        )
    return descriptors


def create_testnet_registry() -> ChainRegistry:
    """Registry of CCTP V2 testnets, including Solana devnet."""
    return ChainRegistry(
        _build_descriptors(
            TESTNET_DEPLOYMENTS,
            solana_chain_id=SOLANA_DEVNET_CHAIN_ID,
            token_messenger=TOKEN_MESSENGER_V2_TESTNET,
            message_transmitter=MESSAGE_TRANSMITTER_V2_TESTNET,
            testnet=True,
        )
    )


def create_mainnet_registry() -> ChainRegistry:
    """Registry of CCTP V2 mainnets, including Solana mainnet-beta."""
    return ChainRegistry(
        _build_descriptors(
            MAINNET_DEPLOYMENTS,
            solana_chain_id=SOLANA_MAINNET_CHAIN_ID,
            token_messenger=TOKEN_MESSENGER_V2,
            message_transmitter=MESSAGE_TRANSMITTER_V2,
            testnet=False,
        )
    )
