"""Chain adapter factory. Uses FakeChain unless CHAIN_ADAPTER says otherwise."""

import os

from custody.chain.port import ChainLedger

_chain: ChainLedger | None = None


def get_chain() -> ChainLedger:
    """Return the configured chain adapter (singleton)."""
    global _chain
    if _chain is None:
        adapter = os.environ.get("CHAIN_ADAPTER", "fake")
        if adapter == "fake":
            from custody.chain.fake_adapter import FakeChain

            _chain = FakeChain()
        else:
            raise ValueError(f"Unknown chain adapter: {adapter}")
    return _chain


def set_chain(chain: ChainLedger) -> None:
    global _chain
    _chain = chain


def reset_chain() -> None:
    global _chain
    _chain = None
