"""
Program id -> decoder registry.
"""
import logging
import threading
from typing import List, Optional, Protocol, Union

from solders.pubkey import Pubkey

from ..parser.base import BaseDecoder, to_pubkey

logger = logging.getLogger(__name__)


class Plugin(Protocol):
    """A bundle of decoders that installs itself into a registry"""

    name: str
    version: str

    def install(self, registry: "ParserRegistry") -> None:
        ...


class ParserRegistry:
    """
    Maps each program id to at most one decoder.

    The same decoder instance may be bound to several program ids. Writes
    take the lock, reads copy under it, so the registry can be shared with
    worker threads.
    """

    def __init__(self):
        self._decoders = {}
        self._lock = threading.RLock()

    def register(self, decoder: BaseDecoder, program_id: Optional[Union[str, Pubkey]] = None) -> None:
        """
        Bind a decoder to a program id, replacing any existing binding.

        Args:
            decoder: decoder to bind
            program_id: explicit program id; defaults to ``decoder.program_id``
        """
        key = to_pubkey(program_id) if program_id is not None else decoder.program_id
        if key is None:
            raise ValueError(f"Cannot register {type(decoder).__name__}: no valid program id")

        with self._lock:
            previous = self._decoders.get(key)
            self._decoders[key] = decoder
        if previous is not None and previous is not decoder:
            logger.debug(f"Replaced decoder for {key}: {type(previous).__name__} -> {type(decoder).__name__}")

    def get(self, program_id: Union[str, Pubkey]) -> Optional[BaseDecoder]:
        key = to_pubkey(program_id)
        if key is None:
            return None
        with self._lock:
            return self._decoders.get(key)

    def install(self, plugin: Plugin) -> None:
        """Let a plugin register its decoders."""
        plugin.install(self)
        logger.info(f"Installed plugin {plugin.name} v{plugin.version}")

    def get_all(self) -> List[BaseDecoder]:
        """Snapshot of the bound decoders, one entry per binding."""
        with self._lock:
            return list(self._decoders.values())

    def __contains__(self, program_id: Union[str, Pubkey]) -> bool:
        return self.get(program_id) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._decoders)
