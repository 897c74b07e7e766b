"""
Instruction decoders
"""
from .base import BaseDecoder, DecoderKind, Direction, ParsedAction, ParsedResult, ParserContext
from .anchor import AnchorDecoder, AnchorIdlService, IdlCache
from .jupiter import JupiterDecoder
from .orca import OrcaDecoder
from .raydium import RaydiumDecoder
from .system import SystemDecoder
from .token import TokenDecoder

__all__ = [
    'BaseDecoder',
    'DecoderKind',
    'Direction',
    'ParsedAction',
    'ParsedResult',
    'ParserContext',
    'AnchorDecoder',
    'AnchorIdlService',
    'IdlCache',
    'JupiterDecoder',
    'OrcaDecoder',
    'RaydiumDecoder',
    'SystemDecoder',
    'TokenDecoder',
]
