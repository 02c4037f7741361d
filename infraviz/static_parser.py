"""
Best-effort resource scan of a Pulumi TypeScript program.

Used when `pulumi preview` cannot run. It recognises
`const x = new aws.s3.Bucket("name", {...})` style declarations and infers
dependencies from references to variables declared earlier in the file.
"""
import re
from typing import Dict, List

from infraviz.schemas import PreviewEvent

STACK_NAME = "dev"
PROJECT_NAME = "infra"

_RESOURCE_DECL = re.compile(
    r"(?:(?:const|let|var)\s+(?P<var>[A-Za-z_$][\w$]*)\s*=\s*)?"
    r"new\s+(?P<path>[A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)+)\s*\(\s*"
    r"[\"'`](?P<name>[^\"'`]+)[\"'`]"
)
_PARENT_OPTION = re.compile(r"\bparent\s*:\s*([A-Za-z_$][\w$]*)")

IGNORED_PACKAGES = {"pulumi"}


def _lower_first(name: str) -> str:
    return name[:1].lower() + name[1:]


def type_token_for(path: str) -> str:
    """aws.ec2.SecurityGroup -> aws:ec2/securityGroup:SecurityGroup"""
    parts = path.split(".")
    package, type_name = parts[0], parts[-1]
    modules = parts[1:-1]
    if not modules:
        return f"{package}:index:{type_name}"
    if len(modules) == 1:
        return f"{package}:{modules[0]}/{_lower_first(type_name)}:{type_name}"
    return f"{package}:{'/'.join(modules)}:{type_name}"


def make_urn(type_token: str, name: str) -> str:
    return f"urn:pulumi:{STACK_NAME}::{PROJECT_NAME}::{type_token}::{name}"


def parse_resources_from_code(code: str) -> List[PreviewEvent]:
    matches = [m for m in _RESOURCE_DECL.finditer(code) if m.group("path").split(".")[0] not in IGNORED_PACKAGES]

    events: List[PreviewEvent] = []
    var_to_urn: Dict[str, str] = {}

    for i, match in enumerate(matches):
        type_token = type_token_for(match.group("path"))
        urn = make_urn(type_token, match.group("name"))
        body_end = matches[i + 1].start() if i + 1 < len(matches) else len(code)
        body = code[match.end():body_end]

        parent = None
        parent_match = _PARENT_OPTION.search(body)
        if parent_match and parent_match.group(1) in var_to_urn:
            parent = var_to_urn[parent_match.group(1)]

        dependencies = []
        for var, dep_urn in var_to_urn.items():
            if dep_urn in dependencies or dep_urn == urn:
                continue
            if re.search(rf"(?<![\w$.]){re.escape(var)}\b", body):
                dependencies.append(dep_urn)

        events.append(PreviewEvent(urn=urn, type=type_token, op="create", parent=parent, dependencies=dependencies))
        if match.group("var"):
            var_to_urn[match.group("var")] = urn

    return events
