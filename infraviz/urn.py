"""
Pulumi URN decoding and meta-resource filtering.

URN format: urn:pulumi:<stack>::<project>::<type>::<name>
where <type> looks like aws:s3/bucket:Bucket.
"""
from typing import List

from infraviz.schemas import ParsedUrn, PreviewEvent

STACK_TYPE = "pulumi:pulumi:Stack"
STACK_REFERENCE_TYPE = "pulumi:pulumi:StackReference"
PROVIDER_TYPE_PREFIX = "pulumi:providers:"


def parse_urn(urn: str) -> ParsedUrn:
    """Splits a URN into provider, full type token and resource name.

    Missing segments degrade to empty strings (type, provider) or the raw
    urn (name).
    """
    parts = urn.split("::")
    type_part = parts[2] if len(parts) > 2 else ""
    name = parts[3] if len(parts) > 3 else urn

    provider_part = type_part.split(":")[0]
    provider = provider_part.split("/")[0]

    return ParsedUrn(provider=provider, resource_type=type_part, name=name)


def should_filter(resource_type: str) -> bool:
    return (
        resource_type == STACK_TYPE
        or resource_type == STACK_REFERENCE_TYPE
        or resource_type.startswith(PROVIDER_TYPE_PREFIX)
    )


def filter_events(events: List[PreviewEvent]) -> List[PreviewEvent]:
    """Drops bookkeeping pseudo-resources, keeping planner order."""
    return [e for e in events if not should_filter(e.type)]
