"""
Transaction parser: turns a Solana transaction into an ordered list of
decoded actions.

Instructions are flattened (top-level first, then inner instructions),
dispatched to the decoder registered for their program, then to the IDL
fallback, and finally reported as raw ``Unknown`` actions. USD totals are
attached at the end.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import base58
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import Transaction, VersionedTransaction

from ..config import FEE_PRECISION, LAMPORTS_PER_SOL
from ..constants import (
    JUPITER_V6_PROGRAM_ID,
    ORCA_WHIRLPOOL_PROGRAM_ID,
    RAYDIUM_PROGRAM_IDS,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)
from ..parser.anchor import AnchorDecoder, AnchorIdlService, IdlCache
from ..parser.base import (
    AccountRef,
    BaseDecoder,
    Direction,
    Instruction,
    ParsedAction,
    ParsedResult,
    ParserContext,
)
from ..parser.jupiter import JupiterDecoder
from ..parser.orca import OrcaDecoder
from ..parser.raydium import RaydiumDecoder
from ..parser.system import SystemDecoder
from ..parser.token import TokenDecoder
from ..services.enrichment import PriceEnricher
from ..services.price_service import JupiterPriceService
from .address_resolver import AddressResolver, LookupTableReference
from .registry import ParserRegistry

logger = logging.getLogger(__name__)

SIMULATED_SIGNATURE = "SIMULATED"
SIMULATED_FAILURE_SIGNATURE = "SIMULATED_FAILURE"


def format_fee(lamports: int) -> str:
    """Lamports as a SOL string with fixed precision."""
    return f"{lamports / LAMPORTS_PER_SOL:.{FEE_PRECISION}f}"


def default_registry(fallback: Optional[BaseDecoder] = None) -> ParserRegistry:
    """
    Registry with the built-in decoders.

    Args:
        fallback: IDL fallback shared with the Orca decoder
    """
    registry = ParserRegistry()
    registry.register(SystemDecoder())

    token = TokenDecoder()
    registry.register(token, TOKEN_PROGRAM_ID)
    registry.register(token, TOKEN_2022_PROGRAM_ID)

    registry.register(JupiterDecoder(), JUPITER_V6_PROGRAM_ID)

    raydium = RaydiumDecoder()
    for program_id in RAYDIUM_PROGRAM_IDS:
        registry.register(raydium, program_id)

    registry.register(OrcaDecoder(fallback=fallback), ORCA_WHIRLPOOL_PROGRAM_ID)
    return registry


def _account_flags(total: int, num_signers: int, readonly_signed: int, readonly_unsigned: int) -> List[Tuple[bool, bool]]:
    """(is_signer, is_writable) for each static account key, from the message header."""
    flags = []
    for i in range(total):
        if i < num_signers:
            flags.append((True, i < num_signers - readonly_signed))
        else:
            flags.append((False, i < total - readonly_unsigned))
    return flags


def unknown_action(instruction: Instruction) -> ParsedAction:
    """Raw representation of an instruction nobody could decode."""
    return ParsedAction(
        protocol="Unknown",
        type="Unknown",
        summary=f"Instruction for program {instruction.program_id}",
        details={
            "programId": str(instruction.program_id),
            "data": instruction.data.hex(),
        },
        direction=Direction.UNKNOWN,
    )


class TransactionParser:
    """Decodes transactions into ``ParsedResult``s"""

    def __init__(
        self,
        rpc,
        registry: Optional[ParserRegistry] = None,
        fallback: Optional[BaseDecoder] = None,
        price_service=None,
        resolver: Optional[AddressResolver] = None,
        idl_cache: Optional[IdlCache] = None,
    ):
        """
        Args:
            rpc: RPC client (see ``txlens.fetcher.client.SolanaClient``)
            registry: decoder registry; the built-in one if omitted
            fallback: decoder for programs without a registered decoder;
                an Anchor IDL decoder if omitted
            price_service: USD price source; Jupiter if omitted
            resolver: address lookup table resolver
            idl_cache: IDL cache for the default fallback
        """
        self.rpc = rpc
        self.fallback = fallback if fallback is not None else AnchorDecoder(AnchorIdlService(rpc), idl_cache)
        self._registry = registry if registry is not None else default_registry(self.fallback)
        self.resolver = resolver if resolver is not None else AddressResolver(rpc)
        self.enricher = PriceEnricher(price_service if price_service is not None else JupiterPriceService(), rpc)

    @property
    def registry(self) -> ParserRegistry:
        return self._registry

    async def parse_transaction(self, signature: str) -> Optional[ParsedResult]:
        """
        Fetch and decode a confirmed transaction.

        Args:
            signature: transaction signature

        Returns:
            The decoded transaction, or None if the node does not know it

        Raises:
            TransactionFetchError: the RPC request failed
        """
        tx = await self.rpc.get_transaction(signature)
        if tx is None:
            logger.info(f"Transaction not found: {signature}")
            return None
        return await self.parse_transaction_response(tx, signature)

    async def parse_transaction_response(self, tx: Dict[str, Any], signature: str) -> ParsedResult:
        """
        Decode an already fetched ``getTransaction`` result (JSON encoding).

        Args:
            tx: RPC result object
            signature: transaction signature to report
        """
        message = tx["transaction"]["message"]
        meta = tx.get("meta") or {}

        accounts = await self._collect_accounts(message, meta)
        account_keys = tuple(ref.pubkey for ref in accounts)

        instructions = self._flatten(message, meta, accounts)
        actions = [await self._dispatch(ix, account_keys) for ix in instructions]

        await self.enricher.enrich(actions)

        return ParsedResult(
            fee=format_fee(meta.get("fee", 0)),
            actions=tuple(actions),
            signature=signature,
            success=meta.get("err") is None,
            timestamp=tx.get("blockTime"),
        )

    async def simulate_and_parse(self, tx: Union[Transaction, VersionedTransaction]) -> ParsedResult:
        """
        Simulate an unsubmitted transaction and decode its instructions.

        Inner instructions are not available from a simulation, so only
        top-level instructions are decoded.
        """
        simulation = await self.rpc.simulate_transaction(tx)
        if simulation.get("err") is not None:
            logger.warning(f"Simulation failed: {simulation['err']}")
            return ParsedResult(fee="0", actions=(), signature=SIMULATED_FAILURE_SIGNATURE, success=False)

        message = tx.message
        keys = list(message.account_keys)
        header = message.header
        flags = _account_flags(
            len(keys),
            header.num_required_signatures,
            header.num_readonly_signed_accounts,
            header.num_readonly_unsigned_accounts,
        )
        accounts = [AccountRef(key, signer, writable) for key, (signer, writable) in zip(keys, flags)]

        if isinstance(message, MessageV0) and message.address_table_lookups:
            lookups = [LookupTableReference.from_message_lookup(lookup) for lookup in message.address_table_lookups]
            writable, readonly = await self.resolver.resolve(lookups)
            accounts.extend(AccountRef(key, False, True) for key in writable)
            accounts.extend(AccountRef(key, False, False) for key in readonly)

        account_keys = tuple(ref.pubkey for ref in accounts)
        actions = []
        for compiled in message.instructions:
            ix = self._build_instruction(compiled.program_id_index, list(compiled.accounts), bytes(compiled.data), accounts)
            if ix is not None:
                actions.append(await self._dispatch(ix, account_keys))

        await self.enricher.enrich(actions)
        return ParsedResult(fee="0", actions=tuple(actions), signature=SIMULATED_SIGNATURE, success=True)

    async def _collect_accounts(self, message: Dict[str, Any], meta: Dict[str, Any]) -> List[AccountRef]:
        keys = [Pubkey.from_string(key["pubkey"] if isinstance(key, dict) else key) for key in message.get("accountKeys", [])]
        header = message.get("header") or {}
        flags = _account_flags(
            len(keys),
            header.get("numRequiredSignatures", 0),
            header.get("numReadonlySignedAccounts", 0),
            header.get("numReadonlyUnsignedAccounts", 0),
        )
        accounts = [AccountRef(key, signer, writable) for key, (signer, writable) in zip(keys, flags)]

        loaded = meta.get("loadedAddresses") or {}
        if loaded.get("writable") or loaded.get("readonly"):
            writable = [Pubkey.from_string(key) for key in loaded.get("writable", [])]
            readonly = [Pubkey.from_string(key) for key in loaded.get("readonly", [])]
        elif message.get("addressTableLookups"):
            lookups = [LookupTableReference.from_json(entry) for entry in message["addressTableLookups"]]
            writable, readonly = await self.resolver.resolve(lookups)
        else:
            writable, readonly = [], []

        accounts.extend(AccountRef(key, False, True) for key in writable)
        accounts.extend(AccountRef(key, False, False) for key in readonly)
        return accounts

    def _flatten(self, message: Dict[str, Any], meta: Dict[str, Any], accounts: Sequence[AccountRef]) -> List[Instruction]:
        """Top-level instructions in message order, then every inner group in the order given."""
        raw = list(message.get("instructions", []))
        for group in meta.get("innerInstructions") or []:
            raw.extend(group.get("instructions", []))

        instructions = []
        for entry in raw:
            ix = self._build_instruction(
                entry["programIdIndex"],
                entry.get("accounts", []),
                self._decode_data(entry.get("data", "")),
                accounts,
            )
            if ix is not None:
                instructions.append(ix)
        return instructions

    @staticmethod
    def _decode_data(data: str) -> bytes:
        if not data:
            return b""
        try:
            return base58.b58decode(data)
        except ValueError as e:
            logger.warning(f"Invalid instruction data {data!r}: {e}")
            return b""

    @staticmethod
    def _build_instruction(
        program_index: int,
        account_indexes: Sequence[int],
        data: bytes,
        accounts: Sequence[AccountRef],
    ) -> Optional[Instruction]:
        if program_index >= len(accounts):
            logger.warning(f"Program index {program_index} out of range ({len(accounts)} accounts)")
            return None
        refs = []
        for idx in account_indexes:
            if idx < len(accounts):
                refs.append(accounts[idx])
            else:
                logger.debug(f"Account index {idx} out of range, skipped")
        return Instruction(program_id=accounts[program_index].pubkey, accounts=tuple(refs), data=data)

    async def _dispatch(self, instruction: Instruction, account_keys: Tuple[Pubkey, ...]) -> ParsedAction:
        context = ParserContext(instruction=instruction, program_id=instruction.program_id, accounts=account_keys)

        decoder = self._registry.get(instruction.program_id)
        if decoder is None:
            decoder = self.fallback

        action = None
        if decoder is not None:
            try:
                action = await decoder.decode(context)
            except Exception as e:
                logger.error(f"{type(decoder).__name__} failed on program {instruction.program_id}: {e}")

        return action if action is not None else unknown_action(instruction)
