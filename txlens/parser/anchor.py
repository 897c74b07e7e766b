"""
Anchor IDL fallback decoder.

Programs without a dedicated decoder are decoded generically from their
on-chain Anchor IDL. IDLs are fetched once per program and kept in an
``IdlCache`` for the lifetime of the process.
"""
import asyncio
import dataclasses
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from anchorpy import Idl, InstructionCoder, Program, Provider, Wallet
from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .base import BaseDecoder, DecoderKind, Direction, ParsedAction, ParserContext
from .layout import ANCHOR_DISCRIMINATOR_SIZE, anchor_discriminator

logger = logging.getLogger(__name__)

IdlFetcher = Callable[[Pubkey], Awaitable[Optional[Dict[str, Any]]]]


class AnchorIdlService:
    """Fetches Anchor IDLs stored on chain"""

    def __init__(self, rpc):
        """
        Args:
            rpc: client exposing ``async connect() -> AsyncClient``
        """
        self.rpc = rpc
        self._provider: Optional[Provider] = None

    async def _get_provider(self) -> Provider:
        if self._provider is None:
            client: AsyncClient = await self.rpc.connect()
            # Read-only access, the wallet never signs.
            self._provider = Provider(client, Wallet(Keypair()))
        return self._provider

    async def fetch_idl(self, program_id: Pubkey) -> Optional[Dict[str, Any]]:
        """
        Fetch and decompress the IDL account of a program.

        Args:
            program_id: program to look up

        Returns:
            The IDL as a JSON dict
        """
        provider = await self._get_provider()
        raw = await Program.fetch_raw_idl(program_id, provider)
        if not raw:
            return None
        return json.loads(raw)


class IdlCache:
    """
    Program id -> IDL map with one in-flight fetch per program.

    Entries are written on the first successful fetch and never evicted.
    Failed fetches are not remembered, so the next lookup tries again.
    """

    def __init__(self):
        self._idls: Dict[Pubkey, Dict[str, Any]] = {}
        self._pending: Dict[Pubkey, "asyncio.Future[Optional[Dict[str, Any]]]"] = {}

    def __contains__(self, program_id: Pubkey) -> bool:
        return program_id in self._idls

    def __len__(self) -> int:
        return len(self._idls)

    async def get_or_fetch(self, program_id: Pubkey, fetch: IdlFetcher) -> Optional[Dict[str, Any]]:
        """
        Return the cached IDL, fetching it if needed.

        Concurrent callers for the same program wait on the same fetch.
        """
        idl = self._idls.get(program_id)
        if idl is not None:
            return idl

        pending = self._pending.get(program_id)
        if pending is not None:
            return await pending

        future = asyncio.get_running_loop().create_future()
        self._pending[program_id] = future
        try:
            idl = await fetch(program_id)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            logger.warning(f"Failed to fetch IDL for {program_id}: {e}")
            idl = None
        finally:
            self._pending.pop(program_id, None)

        if idl is not None:
            self._idls[program_id] = idl
        future.set_result(idl)
        return idl


def _legacy_type(type_info: Any) -> Any:
    """Rewrite a 0.30 IDL type to the legacy spelling anchorpy parses."""
    if isinstance(type_info, str):
        return "publicKey" if type_info == "pubkey" else type_info
    if not isinstance(type_info, dict):
        return type_info

    if "defined" in type_info:
        name = type_info["defined"]
        return {"defined": name["name"] if isinstance(name, dict) else name}
    for wrapper in ("option", "coption", "vec"):
        if wrapper in type_info:
            return {wrapper: _legacy_type(type_info[wrapper])}
    if "array" in type_info:
        inner, length = type_info["array"]
        return {"array": [_legacy_type(inner), length]}
    return type_info


def _legacy_fields(fields: List[Any]) -> List[Any]:
    # Named fields are dicts, tuple fields are bare types
    return [
        {"name": f["name"], "type": _legacy_type(f["type"])} if isinstance(f, dict) and "name" in f else _legacy_type(f)
        for f in fields
    ]


def _legacy_accounts(accounts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    converted = []
    for account in accounts:
        if "accounts" in account:
            converted.append({"name": account["name"], "accounts": _legacy_accounts(account["accounts"])})
            continue
        converted.append({
            "name": account["name"],
            "isMut": bool(account.get("isMut", account.get("writable", False))),
            "isSigner": bool(account.get("isSigner", account.get("signer", False))),
        })
    return converted


def _legacy_type_def(type_def: Dict[str, Any]) -> Dict[str, Any]:
    body = type_def["type"]
    if body.get("kind") == "struct":
        body = {"kind": "struct", "fields": _legacy_fields(body.get("fields", []))}
    elif body.get("kind") == "enum":
        variants = []
        for variant in body.get("variants", []):
            if variant.get("fields"):
                variants.append({"name": variant["name"], "fields": _legacy_fields(variant["fields"])})
            else:
                variants.append({"name": variant["name"]})
        body = {"kind": "enum", "variants": variants}
    return {"name": type_def["name"], "type": body}


def to_legacy_idl(idl: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize an IDL to the legacy (pre 0.30) layout understood by anchorpy.

    Only what instruction decoding needs is kept: instructions, their
    accounts and args, and the defined types. Legacy IDLs pass through
    unchanged apart from dropping the other sections.
    """
    instructions = [
        {
            "name": ix["name"],
            "accounts": _legacy_accounts(ix.get("accounts", [])),
            "args": [{"name": arg["name"], "type": _legacy_type(arg["type"])} for arg in ix.get("args", [])],
        }
        for ix in idl.get("instructions", [])
    ]
    return {
        "version": idl.get("version") or idl.get("metadata", {}).get("version") or "0.0.0",
        "name": idl.get("name") or idl.get("metadata", {}).get("name") or "unknown",
        "instructions": instructions,
        "accounts": [],
        "types": [_legacy_type_def(t) for t in idl.get("types", []) if "name" in t and "type" in t],
    }


def _to_plain(value: Any) -> Any:
    """anchorpy decoded value -> JSON friendly value. Integers become decimal strings."""
    if value is None or isinstance(value, (bool, str, float)):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Pubkey):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items() if not str(k).startswith("_")}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    attrs = getattr(type(value), "__attrs_attrs__", None)
    if attrs is not None:
        # Enum variant: unit variants render as their name
        variant = type(value).__name__
        if not attrs:
            return variant
        return {variant: {a.name: _to_plain(getattr(value, a.name)) for a in attrs}}
    return str(value)


class AnchorIdlCoder:
    """
    Decodes instruction data against an Anchor IDL with anchorpy's
    ``InstructionCoder``.

    IDLs in the 0.30 format carry explicit discriminators which may differ
    from the hashed ones anchorpy computes; those payloads get their prefix
    rewritten before parsing.
    """

    def __init__(self, idl: Dict[str, Any]):
        self.idl = idl
        legacy = to_legacy_idl(idl)
        self.coder = InstructionCoder(Idl.from_json(json.dumps(legacy)))
        self._prefixes: Dict[bytes, bytes] = {}
        for ix in idl.get("instructions", []):
            if "discriminator" not in ix:
                continue
            explicit = bytes(ix["discriminator"])
            hashed = anchor_discriminator(ix["name"])
            if explicit != hashed:
                self._prefixes[explicit] = hashed

    @property
    def program_name(self) -> str:
        return self.idl.get("metadata", {}).get("name") or self.idl.get("name") or "Unknown Program"

    def decode(self, data: bytes) -> Optional[Tuple[str, Dict[str, Any]]]:
        """
        Decode instruction data.

        Returns:
            (snake_case instruction name, field mapping), or None if no
            instruction matches or the data does not fit the args
        """
        for explicit, hashed in self._prefixes.items():
            if data.startswith(explicit):
                data = hashed + data[len(explicit):]
                break
        try:
            parsed = self.coder.parse(data)
        except Exception as e:
            logger.debug(f"IDL decode failed for {self.program_name}: {e}")
            return None
        return parsed.name, _to_plain(parsed.data)


class AnchorDecoder(BaseDecoder):
    """Generic decoder driven by on-chain Anchor IDLs"""

    kind = DecoderKind.IDL_FALLBACK
    program_id = None

    def __init__(self, idl_service, cache: Optional[IdlCache] = None):
        """
        Args:
            idl_service: object exposing ``async fetch_idl(program_id)``
            cache: IDL cache to use; a private one is created if omitted
        """
        self.idl_service = idl_service
        self.cache = cache if cache is not None else IdlCache()
        self._coders: Dict[Pubkey, AnchorIdlCoder] = {}

    async def decode(self, context: ParserContext) -> Optional[ParsedAction]:
        program_id = context.program_id
        if len(context.data) < ANCHOR_DISCRIMINATOR_SIZE:
            return None

        idl = await self.cache.get_or_fetch(program_id, self.idl_service.fetch_idl)
        if idl is None:
            return None

        coder = self._coders.get(program_id)
        if coder is None or coder.idl is not idl:
            try:
                coder = AnchorIdlCoder(idl)
            except Exception as e:
                logger.warning(f"Malformed IDL for {program_id}: {e}")
                return None
            self._coders[program_id] = coder

        decoded = coder.decode(context.data)
        if decoded is None:
            return None

        name, fields = decoded
        return ParsedAction(
            protocol=coder.program_name,
            type=name,
            summary=f"{coder.program_name}: {name}",
            details={"data": fields},
            direction=Direction.UNKNOWN,
        )
