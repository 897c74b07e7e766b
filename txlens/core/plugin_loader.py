"""
Declarative decoder plugins.

A plugin is a JSON document describing programs and their instructions:

    {
        "name": "my-plugin",
        "version": "1.0.0",
        "parsers": [
            {
                "programId": "<base58 program id>",
                "protocol": "My Protocol",
                "instructions": [
                    {"discriminator": "e517cb977ae3ad2a", "actionType": "Swap",
                     "summaryTemplate": "Swap by {0}"}
                ]
            }
        ]
    }

``{N}`` placeholders in a summary template are replaced with the shortened
address of the instruction's N-th account.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import aiohttp
from solders.pubkey import Pubkey

from ..config import HTTP_TIMEOUT
from ..errors import PluginFetchError, PluginValidationError
from ..parser.base import BaseDecoder, DecoderKind, Direction, ParsedAction, ParserContext, to_pubkey
from .registry import ParserRegistry

logger = logging.getLogger(__name__)

ADDRESS_PREVIEW_LENGTH = 8


@dataclass(frozen=True)
class InstructionPattern:
    action_type: str
    summary_template: str
    discriminator: Optional[bytes] = None


@dataclass(frozen=True)
class ParserDefinition:
    program_id: Pubkey
    protocol: str
    instructions: List[InstructionPattern] = field(default_factory=list)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: List[str]


class SchemaDecoder(BaseDecoder):
    """Decoder built from a plugin parser definition"""

    kind = DecoderKind.SCHEMA

    def __init__(self, definition: ParserDefinition):
        self.definition = definition
        self.program_id = definition.program_id

    async def decode(self, context: ParserContext) -> Optional[ParsedAction]:
        patterns = self.definition.instructions
        if not patterns:
            return ParsedAction(
                protocol=self.definition.protocol,
                type="Unknown",
                summary=f"{self.definition.protocol} instruction",
                details={},
                direction=Direction.UNKNOWN,
            )

        data = context.data
        for pattern in patterns:
            if pattern.discriminator and data[:len(pattern.discriminator)] == pattern.discriminator:
                return self._create_action(pattern, context)

        # Nothing matched: the first declared pattern is used as the default
        return self._create_action(patterns[0], context)

    def _create_action(self, pattern: InstructionPattern, context: ParserContext) -> ParsedAction:
        accounts = [str(key) for key in context.instruction.account_keys]

        summary = pattern.summary_template
        for index, address in enumerate(accounts):
            summary = summary.replace(f"{{{index}}}", address[:ADDRESS_PREVIEW_LENGTH] + "...")

        return ParsedAction(
            protocol=self.definition.protocol,
            type=pattern.action_type,
            summary=summary,
            details={"accounts": accounts},
            direction=Direction.UNKNOWN,
        )


class SchemaPlugin:
    """Plugin created from a validated schema"""

    def __init__(self, name: str, version: str, definitions: List[ParserDefinition]):
        self.name = name
        self.version = version
        self.definitions = definitions

    def install(self, registry: ParserRegistry) -> None:
        for definition in self.definitions:
            registry.register(SchemaDecoder(definition))


def _is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_hex(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True


class PluginLoader:
    """Validates plugin schemas and turns them into installable plugins"""

    @staticmethod
    def validate(schema: Any) -> ValidationResult:
        """
        Check a plugin schema. All problems are collected, not just the first.

        Args:
            schema: parsed plugin document

        Returns:
            ValidationResult with the list of error messages
        """
        errors: List[str] = []
        if not isinstance(schema, dict):
            return ValidationResult(False, ["Schema must be a JSON object"])

        if not _is_non_empty_str(schema.get("name")):
            errors.append('Schema must have a valid "name" field')
        if not _is_non_empty_str(schema.get("version")):
            errors.append('Schema must have a valid "version" field')

        parsers = schema.get("parsers")
        if not isinstance(parsers, list):
            errors.append('Schema must have a "parsers" array')
            return ValidationResult(not errors, errors)

        for i, parser in enumerate(parsers):
            if not isinstance(parser, dict):
                errors.append(f"Parser at index {i} must be an object")
                continue

            program_id = parser.get("programId")
            if not program_id:
                errors.append(f'Parser at index {i} must have a "programId"')
            elif not isinstance(program_id, str) or to_pubkey(program_id) is None:
                errors.append(f"Parser at index {i} has invalid programId: {program_id}")

            if not _is_non_empty_str(parser.get("protocol")):
                errors.append(f'Parser at index {i} must have a "protocol"')

            instructions = parser.get("instructions")
            if instructions is None:
                continue
            if not isinstance(instructions, list):
                errors.append(f'Parser at index {i} has a non-array "instructions" field')
                continue
            for j, pattern in enumerate(instructions):
                if not isinstance(pattern, dict):
                    errors.append(f"Parser at index {i}, instruction {j} must be an object")
                    continue
                if "discriminator" in pattern and not _is_hex(pattern["discriminator"]):
                    errors.append(f"Parser at index {i}, instruction {j} has invalid discriminator")
                if not isinstance(pattern.get("actionType"), str):
                    errors.append(f'Parser at index {i}, instruction {j} must have an "actionType"')
                if not isinstance(pattern.get("summaryTemplate"), str):
                    errors.append(f'Parser at index {i}, instruction {j} must have a "summaryTemplate"')

        return ValidationResult(not errors, errors)

    @classmethod
    def load_from_json(cls, schema: Union[str, bytes, Dict[str, Any]]) -> SchemaPlugin:
        """
        Build a plugin from a schema dict or JSON text.

        Raises:
            PluginValidationError: the schema is invalid; nothing is built
        """
        if isinstance(schema, (str, bytes)):
            try:
                schema = json.loads(schema)
            except ValueError as e:
                raise PluginValidationError([f"Schema is not valid JSON: {e}"]) from e

        validation = cls.validate(schema)
        if not validation.valid:
            raise PluginValidationError(validation.errors)

        definitions = []
        for parser in schema["parsers"]:
            patterns = [
                InstructionPattern(
                    action_type=pattern["actionType"],
                    summary_template=pattern["summaryTemplate"],
                    discriminator=bytes.fromhex(pattern["discriminator"]) if pattern.get("discriminator") else None,
                )
                for pattern in parser.get("instructions") or []
            ]
            definitions.append(ParserDefinition(
                program_id=Pubkey.from_string(parser["programId"]),
                protocol=parser["protocol"],
                instructions=patterns,
            ))

        return SchemaPlugin(schema["name"], schema["version"], definitions)

    @classmethod
    async def load_from_url(cls, url: str, timeout: float = HTTP_TIMEOUT) -> SchemaPlugin:
        """
        Fetch a plugin schema over HTTP and load it.

        Raises:
            PluginFetchError: the document could not be fetched or is not JSON
            PluginValidationError: the document is not a valid schema
        """
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
                async with session.get(url) as response:
                    if response.status < 200 or response.status >= 300:
                        raise PluginFetchError(f"Failed to fetch plugin from {url}: HTTP {response.status}")
                    schema = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PluginFetchError(f"Failed to fetch plugin from {url}: {e}") from e

        logger.info(f"Fetched plugin schema from {url}")
        return cls.load_from_json(schema)
