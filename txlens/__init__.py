"""
txlens: decode Solana transactions into human-readable actions
"""
from .core.registry import ParserRegistry
from .core.transaction_parser import TransactionParser
from .fetcher.client import SolanaClient
from .parser.base import Direction, ParsedAction, ParsedResult

__version__ = "0.1.0"

__all__ = [
    'ParserRegistry',
    'TransactionParser',
    'SolanaClient',
    'Direction',
    'ParsedAction',
    'ParsedResult',
]
