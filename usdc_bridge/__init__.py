"""USDC cross-chain transfers over Circle's CCTP V2.

See :py:mod:`usdc_bridge.cctp.orchestrator` for the transfer state machine.
"""
