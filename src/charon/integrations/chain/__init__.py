"""On-chain integrations."""

from charon.integrations.chain.ctf import CTF_ADDRESS, USDC_ADDRESS, CTFClient, CTFError

__all__ = [
    "CTFClient",
    "CTFError",
    "CTF_ADDRESS",
    "USDC_ADDRESS",
]
