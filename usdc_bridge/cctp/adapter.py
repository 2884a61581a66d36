"""Chain adapter interface.

A chain adapter gives the transfer orchestrator the same four operations
on every chain family:

- read the USDC balance
- approve the burn contract to spend USDC
- burn USDC with ``depositForBurn``
- mint USDC on the destination with ``receiveMessage``

Implementations:

- :py:class:`usdc_bridge.cctp.evm.EVMChainAdapter` for account chains
- :py:class:`usdc_bridge.cctp.solana.SolanaChainAdapter` for the program chain

Adapters are built per transfer side by
:py:class:`usdc_bridge.cctp.factory.ChainAdapterFactory`.
"""

import abc

from usdc_bridge.cctp.attestation import Attestation
from usdc_bridge.cctp.registry import ChainDescriptor

#: Returned by :py:meth:`ChainAdapter.approve` on chains without an allowance model
NOOP_APPROVAL = "noop"


class ChainAdapter(abc.ABC):
    """USDC bridge operations on one chain."""

    def __init__(self, descriptor: ChainDescriptor):
        #: Chain this adapter operates on
        self.descriptor = descriptor

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.descriptor.name} ({self.descriptor.chain_id})>"

    @property
    @abc.abstractmethod
    def owner_address(self) -> str:
        """Address of the signer that pays and signs on this chain."""

    @abc.abstractmethod
    def get_balance(self, owner: str | None = None) -> str:
        """Read the USDC balance.

        :param owner:
            Address to check. Defaults to :py:attr:`owner_address`.

        :return:
            Human readable decimal string, e.g. ``"12.5"``.
        """

    @abc.abstractmethod
    def approve(self, spender: str, amount: int) -> str:
        """Allow ``spender`` to pull ``amount`` raw USDC units.

        :return:
            Transaction hash, or :py:data:`NOOP_APPROVAL` when the chain needs no approval.
        """

    @abc.abstractmethod
    def burn(
        self,
        amount: int,
        destination_domain: int,
        mint_recipient: bytes,
        max_fee: int,
        finality_threshold: int,
    ) -> str:
        """Burn USDC for minting on another domain.

        :param amount:
            Raw USDC units.

        :param destination_domain:
            CCTP domain of the destination chain.

        :param mint_recipient:
            Recipient as ``bytes32``, see :py:meth:`encode_mint_recipient`
            of the destination adapter.

        :param max_fee:
            Maximum fee in raw units.

        :param finality_threshold:
            1000 for fast, 2000 for standard transfers.

        :return:
            Transaction hash or signature.
        """

    @abc.abstractmethod
    def mint(self, attestation: Attestation) -> str:
        """Relay an attested message and mint USDC.

        :raise TransactionExecutionError:
            The mint transaction could not be executed. Safe to retry.

        :return:
            Transaction hash or signature.
        """

    @abc.abstractmethod
    def encode_mint_recipient(self, address: str) -> bytes:
        """Encode a recipient on this chain as the ``bytes32`` carried in the burn message."""
