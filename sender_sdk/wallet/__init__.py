from .signer import ExternalSigner, LocalKeySigner, Signer, UnlockedSigner, recover_hash

__all__ = ["Signer", "UnlockedSigner", "LocalKeySigner", "ExternalSigner", "recover_hash"]
