import logging
from contextlib import asynccontextmanager
from typing import Union

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from infraviz.cost import CostReport
from infraviz.errors import CodeGenerationError
from infraviz.schemas import DeployResult, ErrorResult, GraphPayload, StackRecord
from infraviz.service import InfraService

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Builds the service unless one was installed already, then probes the Pulumi CLI once."""
    if getattr(app.state, "service", None) is None:
        app.state.service = InfraService()
    await app.state.service.startup()
    yield


app = FastAPI(title="Infrastructure Visualizer", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], # Allow all origins for dev
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_service(request: Request) -> InfraService:
    return request.app.state.service


class GenerateRequest(BaseModel):
    description: str = Field(..., description="e.g. 'A Next.js app with Postgres database and S3 file storage'")


class UpdateRequest(BaseModel):
    change_description: str = Field(..., description="e.g. 'Add a Redis cache cluster'")
    stack_id: str = Field(..., description="The stack ID returned by /infrastructure/generate")


class DeployRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stack_id: str = Field(..., alias="stackId")


@app.get("/")
def read_root(service: InfraService = Depends(get_service)):
    return {"status": "Infrastructure Visualizer Active", "subprocess_supported": service.subprocess_supported}


@app.post("/infrastructure/generate", response_model=GraphPayload)
async def generate_infrastructure(req: GenerateRequest, service: InfraService = Depends(get_service)):
    try:
        return await service.generate_infrastructure(req.description)
    except CodeGenerationError as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.post("/infrastructure/update", response_model=Union[GraphPayload, ErrorResult])
async def update_infrastructure(req: UpdateRequest, service: InfraService = Depends(get_service)):
    try:
        return await service.update_infrastructure(req.change_description, req.stack_id)
    except CodeGenerationError as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.post("/deploy", response_model=DeployResult)
async def deploy(req: DeployRequest, service: InfraService = Depends(get_service)):
    return await service.deploy(req.stack_id)


@app.post("/deploy/stream")
async def deploy_stream(req: DeployRequest, service: InfraService = Depends(get_service)):
    """
    Streaming deploy for the graph widget's log panel.
    """
    return StreamingResponse(service.deploy_stream(req.stack_id), media_type="application/x-ndjson")


@app.get("/stacks/{stack_id}", response_model=StackRecord)
def get_stack(stack_id: str, service: InfraService = Depends(get_service)):
    record = service.store.get(stack_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f'Stack "{stack_id}" not found')
    return record


@app.get("/stacks/{stack_id}/cost", response_model=CostReport)
def get_stack_cost(stack_id: str, service: InfraService = Depends(get_service)):
    record = service.store.get(stack_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f'Stack "{stack_id}" not found')
    return service.estimator.estimate_costs(record.nodes)


@app.get("/smoke", response_class=PlainTextResponse)
async def smoke_test(service: InfraService = Depends(get_service)):
    """Checks whether the Pulumi CLI can be launched in this environment."""
    return await service.provisioner.smoke_test()


def run():
    import uvicorn

    uvicorn.run("infraviz.main:app", host="0.0.0.0", port=8000)
