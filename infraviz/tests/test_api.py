import json
import tempfile
import unittest
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from infraviz import main
from infraviz.config import Settings
from infraviz.errors import CodeGenerationError
from infraviz.schemas import PreviewEvent
from infraviz.service import InfraService
from infraviz.stack_store import StackStore

PROGRAM = 'import * as aws from "@pulumi/aws";\nconst assets = new aws.s3.Bucket("assets");\n'


class StubProvisioner:
    def __init__(self):
        self.deploy_lines = ["+ aws:s3:Bucket assets created"]

    async def check_subprocess_support(self):
        return True

    async def preview(self, code, work_dir, stack_id):
        return [PreviewEvent(urn="urn:pulumi:dev::infra::aws:s3/bucket:Bucket::assets", type="aws:s3/bucket:Bucket")]

    async def deploy(self, work_dir, stack_id, on_log_line):
        for line in self.deploy_lines:
            on_log_line(line)

    async def smoke_test(self):
        return "Pulumi subprocess: CONFIRMED (stub)"


class TestApi(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)

        codegen = MagicMock()
        codegen.generate = AsyncMock(return_value=PROGRAM)
        codegen.update = AsyncMock(return_value=PROGRAM)
        self.service = InfraService(
            settings=Settings(workspace_root=tmp.name, simulation_mode=True),
            store=StackStore(tmp.name),
            codegen=codegen,
            provisioner=StubProvisioner(),
        )
        main.app.state.service = self.service
        self.addCleanup(setattr, main.app.state, "service", None)

        self.client = TestClient(main.app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def generate(self):
        resp = self.client.post("/infrastructure/generate", json={"description": "a bucket"})
        self.assertEqual(resp.status_code, 200)
        return resp.json()

    def test_root_reports_subprocess_support(self):
        self.assertTrue(self.client.get("/").json()["subprocess_supported"])

    def test_generate_payload_shape(self):
        data = self.generate()
        self.assertTrue({"nodes", "edges", "stackId", "totalEstimatedCost", "description", "subprocessSupported"} <= set(data))
        self.assertEqual(data["totalEstimatedCost"], 3)
        node = data["nodes"][0]
        self.assertEqual(node["id"], "node-0")
        self.assertEqual(node["data"]["shortType"], "S3 Bucket")
        self.assertEqual(node["data"]["estimatedCost"], 3)

    def test_routes_use_the_installed_service(self):
        data = self.generate()
        self.assertIsNotNone(self.service.store.get(data["stackId"]))
        self.assertIs(main.app.state.service, self.service)

    def test_generation_error_is_bad_gateway(self):
        self.service.codegen.generate = AsyncMock(side_effect=CodeGenerationError("GEMINI_API_KEY environment variable is not set"))
        resp = self.client.post("/infrastructure/generate", json={"description": "x"})
        self.assertEqual(resp.status_code, 502)

    def test_update_unknown_stack_is_a_message(self):
        resp = self.client.post("/infrastructure/update", json={"change_description": "add redis", "stack_id": "missing000"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["error"], "not_found")

    def test_get_stack_and_cost(self):
        stack_id = self.generate()["stackId"]
        record = self.client.get(f"/stacks/{stack_id}").json()
        self.assertEqual(record["deployStatus"], "idle")
        self.assertEqual(record["code"], PROGRAM)
        cost = self.client.get(f"/stacks/{stack_id}/cost").json()
        self.assertEqual(cost["total_monthly_cost"], 3)
        self.assertEqual(self.client.get("/stacks/missing000").status_code, 404)

    def test_deploy(self):
        stack_id = self.generate()["stackId"]
        resp = self.client.post("/deploy", json={"stackId": stack_id})
        self.assertEqual(resp.json()["status"], "deployed")
        self.assertEqual(self.client.get(f"/stacks/{stack_id}").json()["deployStatus"], "deployed")

    def test_deploy_stream(self):
        stack_id = self.generate()["stackId"]
        resp = self.client.post("/deploy/stream", json={"stackId": stack_id})
        lines = [json.loads(l) for l in resp.text.splitlines() if l.strip()]
        self.assertEqual(lines[0], {"type": "log", "content": "+ aws:s3:Bucket assets created"})
        self.assertEqual(lines[-1]["content"]["status"], "deployed")

    def test_smoke(self):
        self.assertIn("CONFIRMED", self.client.get("/smoke").text)


if __name__ == '__main__':
    unittest.main()
