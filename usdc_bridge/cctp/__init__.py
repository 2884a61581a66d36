"""Circle CCTP V2 burn-and-mint bridging.

Transfer orchestration:

- :class:`~usdc_bridge.cctp.orchestrator.TransferOrchestrator`: approve, burn, attest and mint state machine
- :class:`~usdc_bridge.cctp.orchestrator.TransferRequest`: what to move and where

Chains:

- :class:`~usdc_bridge.cctp.registry.ChainRegistry`: chain id to deployment lookups
- :class:`~usdc_bridge.cctp.evm.EVMChainAdapter`: EVM chains (approve / ``depositForBurn`` / ``receiveMessage``)
- :class:`~usdc_bridge.cctp.solana.SolanaChainAdapter`: Solana programs

Attestation:

- :class:`~usdc_bridge.cctp.attestation.AttestationPoller`: poll Circle's Iris API
- :func:`~usdc_bridge.cctp.monitor.fetch_transfer_status`: one-shot status check
"""
