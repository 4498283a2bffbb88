"""
svgnft_deploy.rpc
=================

JSON-RPC transport used by the deployer, contract clients and the CLI.

- http.RpcClient: synchronous httpx client with bounded retries.
"""

from .http import RpcClient, hex_to_int

__all__ = ["RpcClient", "hex_to_int"]
