"""
svgnft_deploy
=============

Deployment automation for the SVGNFT and RandomSVG contracts: deploy the
contracts, fund RandomSVG with LINK, mint, drive the mock VRF callback on the
local chain and read back the token URI.

Layout
------
- orchestrator : the deploy/fund/mint/callback/finalize state machine
- networks     : per-chain profiles (LINK token, VRF coordinator, key hash, fee)
- deployments  : idempotent deployer and deployment records
- contracts    : artifacts, ABI encoding, contract client, event decoding
- tx / wallet / rpc : receipts and confirmation waits, senders, JSON-RPC
- deploy       : the tagged deploy scripts (mocks, svg, rsvg)
- cli          : `svgnft-deploy`
"""

from .version import __version__

__all__ = ["__version__"]
