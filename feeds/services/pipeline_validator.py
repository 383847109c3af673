"""
Pipeline validation

``validate_pipeline`` is the gate in front of the plan compiler. It parses
every block, applies the pipeline-level rules and reports every violation it
finds (each tagged with the offending block index) rather than stopping at
the first one, so editors can highlight all problems at once.

Rules:
- at most ``MAX_BLOCKS`` blocks and at most ``MAX_BLOCK_VALUES`` values in
  any block's value set (``PipelineTooComplex``)
- at most one ``limit`` block (``DuplicateLimitBlock``); the first one does
  not silently win
- several sort blocks are allowed; the compiler keeps the last one
- ``filter-date`` needs ``from <= to`` when both are given
  (``InvalidDateRange``)
- empty author/hashtag sets are legal
- unknown kinds are rejected (``UnsupportedBlockKind``)

Only a ``ValidatedPipeline`` produced here can be compiled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from feeds.blocks import Block, FilterDateBlock, LimitBlock, parse_block
from feeds.conf import engine_setting
from feeds.exceptions import (
    DuplicateLimitBlock,
    InvalidBlock,
    InvalidDateRange,
    PipelineTooComplex,
    PipelineValidationError,
)


@dataclass(frozen=True)
class ValidatedPipeline:
    """Immutable, validated block sequence; the compiler's only input."""

    blocks: Tuple[Block, ...]

    def __len__(self) -> int:
        return len(self.blocks)

    def __iter__(self):
        return iter(self.blocks)

    def to_wire(self) -> List[Dict[str, Any]]:
        """Normalised wire form, suitable for storing on a FeedDefinition."""
        return [block.to_wire() for block in self.blocks]


@dataclass
class ValidationResult:
    errors: List[PipelineValidationError] = field(default_factory=list)
    pipeline: Optional[ValidatedPipeline] = None

    @property
    def is_valid(self) -> bool:
        return not self.errors and self.pipeline is not None

    def raise_for_errors(self) -> ValidatedPipeline:
        """Return the pipeline, or raise the first error with all errors attached."""
        if self.is_valid:
            return self.pipeline
        first = self.errors[0]
        first.details["errors"] = [
            {key: value for key, value in error.as_dict().items() if key != "errors"}
            for error in self.errors
        ]
        raise first


def validate_pipeline(raw_blocks: Any) -> ValidationResult:
    """Validate a wire-form block list and collect every violation."""
    result = ValidationResult()

    if isinstance(raw_blocks, ValidatedPipeline):
        result.pipeline = raw_blocks
        return result
    if isinstance(raw_blocks, (str, bytes)) or not isinstance(raw_blocks, Sequence):
        result.errors.append(InvalidBlock("Pipeline must be an array of blocks."))
        return result

    max_blocks = engine_setting("MAX_BLOCKS")
    if len(raw_blocks) > max_blocks:
        result.errors.append(
            PipelineTooComplex(
                f"Pipeline has {len(raw_blocks)} blocks; at most {max_blocks} are allowed.",
                limit=max_blocks,
            )
        )
        return result

    blocks: List[Block] = []
    for index, raw in enumerate(raw_blocks):
        try:
            blocks.append(parse_block(raw, index))
        except PipelineValidationError as exc:
            result.errors.append(exc)
            continue
        result.errors.extend(_check_block(blocks[-1], index))

    result.errors.extend(_check_limits(raw_blocks))
    result.errors.sort(key=lambda error: -1 if error.index is None else error.index)

    if not result.errors:
        result.pipeline = ValidatedPipeline(tuple(blocks))
    return result


def validate_or_raise(raw_blocks: Any) -> ValidatedPipeline:
    return validate_pipeline(raw_blocks).raise_for_errors()


def _check_block(block: Block, index: int) -> List[PipelineValidationError]:
    errors: List[PipelineValidationError] = []
    max_values = engine_setting("MAX_BLOCK_VALUES")
    if len(block.values()) > max_values:
        errors.append(
            PipelineTooComplex(
                f"Block {index} has {len(block.values())} values; at most {max_values} are allowed.",
                index=index,
                limit=max_values,
            )
        )
    if isinstance(block, FilterDateBlock) and block.start and block.end and block.start > block.end:
        errors.append(InvalidDateRange(index=index))
    return errors


def _check_limits(raw_blocks: Sequence[Any]) -> List[PipelineValidationError]:
    """Every limit block after the first is an error, even if it failed to parse."""
    indices = [
        index for index, raw in enumerate(raw_blocks)
        if isinstance(raw, Mapping) and raw.get("type") == LimitBlock.kind
    ]
    return [DuplicateLimitBlock(index=index) for index in indices[1:]]
