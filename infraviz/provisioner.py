"""
Pulumi CLI adapter: writes the program to the stack's work dir, runs
`pulumi preview --json` to obtain preview events and streams `pulumi up`
output during a deploy.
"""
import asyncio
import json
import logging
import os
from typing import Callable, List, Optional, Tuple

from infraviz.config import Settings, get_settings
from infraviz.errors import ProvisioningError
from infraviz.schemas import PreviewEvent
from infraviz.urn import parse_urn

logger = logging.getLogger(__name__)

PULUMI_YAML = """name: infra
runtime: nodejs
description: Generated by Infrastructure Visualizer
"""

PACKAGE_JSON = {
    "name": "infra",
    "main": "index.ts",
    "devDependencies": {"@types/node": "^20.0.0", "typescript": "^5.0.0"},
    "dependencies": {"@pulumi/pulumi": "^3.0.0", "@pulumi/aws": "^6.0.0"},
}

TSCONFIG_JSON = {
    "compilerOptions": {
        "strict": True,
        "outDir": "bin",
        "target": "es2020",
        "module": "commonjs",
        "moduleResolution": "node",
        "sourceMap": True,
        "experimentalDecorators": True,
        "forceConsistentCasingInFileNames": True,
    },
    "files": ["index.ts"],
}


def write_program(work_dir: str, code: str):
    os.makedirs(work_dir, exist_ok=True)
    with open(os.path.join(work_dir, "index.ts"), "w") as f:
        f.write(code)
    with open(os.path.join(work_dir, "Pulumi.yaml"), "w") as f:
        f.write(PULUMI_YAML)
    with open(os.path.join(work_dir, "package.json"), "w") as f:
        json.dump(PACKAGE_JSON, f, indent=2)
    with open(os.path.join(work_dir, "tsconfig.json"), "w") as f:
        json.dump(TSCONFIG_JSON, f, indent=2)


def events_from_preview_json(data: dict) -> List[PreviewEvent]:
    """Converts the `steps` of `pulumi preview --json` into preview events."""
    events = []
    for step in data.get("steps", []):
        urn = step.get("urn")
        if not urn:
            continue
        state = step.get("newState") or step.get("oldState") or {}
        events.append(PreviewEvent(
            urn=urn,
            type=state.get("type") or parse_urn(urn).resource_type,
            op=step.get("op") or "create",
            parent=state.get("parent") or None,
            dependencies=state.get("dependencies") or [],
        ))
    return events


class PulumiProvisioner:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._subprocess_supported: Optional[bool] = None

    def _env(self, work_dir: Optional[str] = None) -> dict:
        env = dict(os.environ)
        env.setdefault("PULUMI_SKIP_UPDATE_CHECK", "true")
        env.setdefault("PULUMI_CONFIG_PASSPHRASE", self.settings.pulumi_passphrase)
        if work_dir and "PULUMI_BACKEND_URL" not in env:
            env["PULUMI_BACKEND_URL"] = f"file://{work_dir}"
        return env

    async def _run(self, args: List[str], cwd: Optional[str], timeout: float) -> Tuple[int, str, str]:
        proc = await asyncio.create_subprocess_exec(
            *args,
            cwd=cwd,
            env=self._env(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ProvisioningError(f"{' '.join(args[:2])} timed out after {timeout:.0f}s")
        return proc.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")

    async def check_subprocess_support(self) -> bool:
        """Whether the Pulumi CLI can be launched here. Cached after the first probe."""
        if self._subprocess_supported is not None:
            return self._subprocess_supported
        if self.settings.simulation_mode:
            self._subprocess_supported = False
            return False
        try:
            code, stdout, _ = await self._run([self.settings.pulumi_bin, "version"], None, timeout=30)
            self._subprocess_supported = code == 0
            if self._subprocess_supported:
                logger.info("Pulumi CLI available: %s", stdout.strip())
        except (OSError, ProvisioningError) as e:
            logger.info("Pulumi CLI unavailable: %s", e)
            self._subprocess_supported = False
        return self._subprocess_supported

    async def _prepare(self, work_dir: str, stack_id: str):
        if not os.path.isdir(os.path.join(work_dir, "node_modules")):
            code, _, stderr = await self._run(["npm", "install", "--no-audit", "--no-fund"], work_dir, self.settings.preview_timeout)
            if code != 0:
                raise ProvisioningError(f"npm install failed: {stderr.strip()}")

        code, _, stderr = await self._run(
            [self.settings.pulumi_bin, "stack", "select", "--create", stack_id, "--non-interactive"],
            work_dir,
            timeout=60,
        )
        if code != 0:
            raise ProvisioningError(f"pulumi stack select failed: {stderr.strip()}")

    async def preview(self, code: str, work_dir: str, stack_id: str) -> List[PreviewEvent]:
        if self.settings.simulation_mode:
            raise ProvisioningError("Simulation mode: Pulumi preview disabled")

        try:
            write_program(work_dir, code)
            await self._prepare(work_dir, stack_id)
            rc, stdout, stderr = await self._run(
                [self.settings.pulumi_bin, "preview", "--json", "--non-interactive", "--stack", stack_id],
                work_dir,
                self.settings.preview_timeout,
            )
        except OSError as e:
            raise ProvisioningError(f"Could not run pulumi preview: {e}") from e

        if rc != 0:
            raise ProvisioningError(f"pulumi preview exited with code {rc}: {stderr.strip()}")
        try:
            return events_from_preview_json(json.loads(stdout))
        except ValueError as e:
            raise ProvisioningError(f"Unreadable preview output: {e}") from e

    async def deploy(self, work_dir: str, stack_id: str, on_log_line: Callable[[str], None]):
        """Runs `pulumi up`, passing each output line to on_log_line as it arrives."""
        try:
            await self._prepare(work_dir, stack_id)
            proc = await asyncio.create_subprocess_exec(
                self.settings.pulumi_bin, "up", "--yes", "--skip-preview", "--non-interactive", "--stack", stack_id,
                cwd=work_dir,
                env=self._env(work_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ProvisioningError(f"Could not run pulumi up: {e}") from e

        tail: List[str] = []

        async def pump():
            async for raw in proc.stdout:
                line = raw.decode(errors="replace").rstrip()
                if not line:
                    continue
                tail.append(line)
                del tail[:-20]
                on_log_line(line)
            return await proc.wait()

        try:
            rc = await asyncio.wait_for(pump(), timeout=self.settings.deploy_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ProvisioningError(f"pulumi up timed out after {self.settings.deploy_timeout:.0f}s", logs=tail)

        if rc != 0:
            detail = tail[-1] if tail else "no output"
            raise ProvisioningError(f"pulumi up exited with code {rc}: {detail}", logs=tail)

    async def smoke_test(self) -> str:
        work_dir = os.path.join(self.settings.workspace_root, "pulumi-smoke-test")
        try:
            os.makedirs(work_dir, exist_ok=True)
            with open(os.path.join(work_dir, "Pulumi.yaml"), "w") as f:
                f.write("name: smoke\nruntime: nodejs\n")
            rc, stdout, stderr = await self._run([self.settings.pulumi_bin, "version"], work_dir, timeout=30)
        except (OSError, ProvisioningError) as e:
            return f"Pulumi subprocess FAILED: {e}"
        if rc != 0:
            return f"Pulumi subprocess FAILED: {stderr.strip()}"
        return f"Pulumi subprocess: CONFIRMED ({stdout.strip()})"
