import asyncio
import json
import logging
import uuid
from typing import AsyncGenerator, Callable, Optional, Union

from infraviz.codegen import PulumiCodeGenerator
from infraviz.config import Settings, get_settings
from infraviz.cost import CostEstimator
from infraviz.deploy_status import DeployStatusMachine
from infraviz.graph_converter import ConvertedGraph, convert_events
from infraviz.provisioner import PulumiProvisioner
from infraviz.schemas import DeployResult, DeployStatus, ErrorResult, GraphPayload, StackRecord
from infraviz.stack_store import StackLocks, StackStore
from infraviz.static_parser import parse_resources_from_code

logger = logging.getLogger(__name__)

UNSUPPORTED_DEPLOY_MESSAGE = (
    "Deploy is not supported in this environment (subprocess blocked). Visualization is still available."
)


def new_stack_id() -> str:
    return uuid.uuid4().hex[:10]


def format_cost(cost: float) -> str:
    return f"{cost:g}"


class InfraService:
    """
    Generate / update / deploy orchestration for named stacks.

    Update and deploy hold the stack's lock for the whole
    read -> compute -> write sequence.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[StackStore] = None,
        codegen: Optional[PulumiCodeGenerator] = None,
        provisioner: Optional[PulumiProvisioner] = None,
        estimator: Optional[CostEstimator] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or StackStore(self.settings.workspace_root)
        self.codegen = codegen or PulumiCodeGenerator(self.settings)
        self.provisioner = provisioner or PulumiProvisioner(self.settings)
        self.estimator = estimator or CostEstimator()
        self.locks = StackLocks()
        self.subprocess_supported = False

    async def startup(self):
        self.subprocess_supported = await self.provisioner.check_subprocess_support()
        logger.info(
            "Pulumi subprocess support: %s",
            "enabled" if self.subprocess_supported else "disabled (static parser fallback)",
        )

    # =========================================================================
    # GRAPH
    # =========================================================================

    async def generate_graph(self, code: str, stack_id: str, work_dir: str) -> ConvertedGraph:
        try:
            events = await self.provisioner.preview(code, work_dir, stack_id)
        except Exception as e:
            logger.info("Preview unavailable for stack %s, using static parser: %s", stack_id, e)
            events = parse_resources_from_code(code)

        return convert_events(events, estimator=self.estimator)

    def _payload(self, graph: ConvertedGraph, stack_id: str, description: str, summary: str) -> GraphPayload:
        return GraphPayload(
            nodes=graph.nodes,
            edges=graph.edges,
            stack_id=stack_id,
            total_estimated_cost=graph.total_cost,
            description=description,
            subprocess_supported=self.subprocess_supported,
            summary=summary,
        )

    async def generate_infrastructure(self, description: str) -> GraphPayload:
        stack_id = new_stack_id()
        work_dir = self.store.stack_dir(stack_id)

        code = await self.codegen.generate(description)
        graph = await self.generate_graph(code, stack_id, work_dir)

        self.store.set(StackRecord(
            stack_id=stack_id,
            code=code,
            work_dir=work_dir,
            nodes=graph.nodes,
            edges=graph.edges,
            deploy_status="idle",
        ))

        summary = (
            f"Generated infrastructure with {len(graph.nodes)} resources. "
            f"Estimated cost: ~${format_cost(graph.total_cost)}/mo. Stack ID: {stack_id}"
        )
        logger.info(summary)
        return self._payload(graph, stack_id, description, summary)

    async def update_infrastructure(self, change_description: str, stack_id: str) -> Union[GraphPayload, ErrorResult]:
        async with self.locks.for_stack(stack_id):
            record = self.store.get(stack_id)
            if record is None:
                return ErrorResult(
                    error="not_found",
                    message=f'Error: Stack "{stack_id}" not found. Please call generate_infrastructure first.',
                )

            code = await self.codegen.update(record.code, change_description)
            graph = await self.generate_graph(code, stack_id, record.work_dir)

            self.store.set(record.model_copy(update={
                "code": code,
                "nodes": graph.nodes,
                "edges": graph.edges,
            }))

        summary = (
            f"Updated infrastructure: {len(graph.nodes)} resources, "
            f"~${format_cost(graph.total_cost)}/mo. Stack ID: {stack_id}"
        )
        logger.info(summary)
        return self._payload(graph, stack_id, change_description, summary)

    # =========================================================================
    # DEPLOY
    # =========================================================================

    def _save_status(self, stack_id: str, status: DeployStatus):
        record = self.store.get(stack_id)
        if record is not None:
            self.store.set(record.model_copy(update={"deploy_status": status}))

    async def deploy(self, stack_id: str, on_log_line: Optional[Callable[[str], None]] = None) -> DeployResult:
        async with self.locks.for_stack(stack_id):
            record = self.store.get(stack_id)
            if record is None:
                return DeployResult(status="failed", message=f'Stack "{stack_id}" not found', logs=[])

            if not self.subprocess_supported:
                return DeployResult(
                    status="failed",
                    message=UNSUPPORTED_DEPLOY_MESSAGE,
                    logs=["[error] Pulumi subprocess is not supported in this sandbox environment."],
                )

            current = record.deploy_status
            if current == "deploying":
                # left over from a process that died mid-deploy
                logger.warning("Stack %s was stuck in 'deploying', treating the last attempt as failed", stack_id)
                current = "failed"

            machine = DeployStatusMachine(current, on_change=lambda status: self._save_status(stack_id, status))
            logs = []

            def collect(line: str):
                line = line.strip()
                logs.append(line)
                if on_log_line:
                    on_log_line(line)

            machine.start()
            try:
                await self.provisioner.deploy(record.work_dir, stack_id, collect)
            except Exception as e:
                err = str(e)
                logger.error("Deploy of stack %s failed: %s", stack_id, err)
                logs.append(f"[error] {err}")
                machine.fail()
                return DeployResult(status="failed", message=f"Deploy failed: {err}", logs=logs)

            machine.succeed()

        created = len([l for l in logs if "created" in l.lower() or "+" in l])
        return DeployResult(
            status="deployed",
            message=f"Deployed successfully. ~{created} resources created.",
            logs=logs,
        )

    async def deploy_stream(self, stack_id: str) -> AsyncGenerator[str, None]:
        """NDJSON: one {"type": "log"} line per deploy output line, then the result."""
        def send(type_, content): return json.dumps({"type": type_, "content": content}) + "\n"

        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(self.deploy(stack_id, on_log_line=queue.put_nowait))

        while not task.done() or not queue.empty():
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield send("log", getter.result())
            else:
                getter.cancel()

        result = await task
        yield send("result", result.model_dump())
