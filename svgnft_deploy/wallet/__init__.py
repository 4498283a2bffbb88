from .signer import LocalKeySigner, NodeAccountSigner, Signer, signer_from_settings

__all__ = ["Signer", "NodeAccountSigner", "LocalKeySigner", "signer_from_settings"]
