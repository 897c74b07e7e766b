"""
Address lookup table resolution for versioned (v0) transactions.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from solders.address_lookup_table_account import AddressLookupTable
from solders.pubkey import Pubkey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LookupTableReference:
    """One ``addressTableLookups`` entry of a v0 message"""
    account_key: Pubkey
    writable_indexes: Tuple[int, ...]
    readonly_indexes: Tuple[int, ...]

    @classmethod
    def from_json(cls, entry: Dict[str, Any]) -> "LookupTableReference":
        """Build from the RPC JSON form (``accountKey``, ``writableIndexes``, ``readonlyIndexes``)."""
        return cls(
            account_key=Pubkey.from_string(entry["accountKey"]),
            writable_indexes=tuple(entry.get("writableIndexes", [])),
            readonly_indexes=tuple(entry.get("readonlyIndexes", [])),
        )

    @classmethod
    def from_message_lookup(cls, lookup) -> "LookupTableReference":
        """Build from a ``solders.message.MessageAddressTableLookup``."""
        return cls(
            account_key=lookup.account_key,
            writable_indexes=tuple(lookup.writable_indexes),
            readonly_indexes=tuple(lookup.readonly_indexes),
        )


def parse_lookup_table_addresses(data: bytes) -> List[Pubkey]:
    """
    Extract the address list from raw lookup table account data.

    Raises:
        ValueError: data is not an initialized lookup table
    """
    try:
        table = AddressLookupTable.deserialize(data)
    except Exception as e:
        raise ValueError(f"cannot deserialize lookup table ({len(data)} bytes): {e}") from e
    return list(table.addresses)


class AddressResolver:
    """Expands lookup table references into concrete account keys"""

    def __init__(self, rpc):
        """
        Args:
            rpc: client exposing ``async get_multiple_accounts(pubkeys)``
        """
        self.rpc = rpc

    async def resolve(self, lookups: Sequence[LookupTableReference]) -> Tuple[List[Pubkey], List[Pubkey]]:
        """
        Resolve lookup table references.

        All tables are fetched in a single RPC round trip. Missing tables are
        skipped, as are indexes beyond the end of a table.

        Args:
            lookups: references in message order

        Returns:
            (writable addresses, readonly addresses)
        """
        writable: List[Pubkey] = []
        readonly: List[Pubkey] = []
        if not lookups:
            return writable, readonly

        table_keys = [lookup.account_key for lookup in lookups]
        account_datas = await self.rpc.get_multiple_accounts(table_keys)

        for i, lookup in enumerate(lookups):
            data = account_datas[i] if i < len(account_datas) else None
            if data is None:
                logger.warning(f"Address lookup table not found: {lookup.account_key}")
                continue

            try:
                addresses = parse_lookup_table_addresses(data)
            except ValueError as e:
                logger.warning(f"Invalid address lookup table {lookup.account_key}: {e}")
                continue

            for idx in lookup.writable_indexes:
                if idx < len(addresses):
                    writable.append(addresses[idx])
            for idx in lookup.readonly_indexes:
                if idx < len(addresses):
                    readonly.append(addresses[idx])

        return writable, readonly
