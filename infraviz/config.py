import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    gemini_api_key: Optional[str] = Field(default=None, description="API key for the code generation model")
    model_name: str = Field(default="gemini-2.5-pro", description="Gemini model used to write Pulumi programs")
    workspace_root: str = Field(default="/tmp", description="Directory holding one infra-<stackId> folder per stack")
    pulumi_bin: str = Field(default="pulumi", description="Pulumi CLI executable")
    deploy_timeout: float = Field(default=900.0, description="Seconds before a deploy subprocess is killed")
    preview_timeout: float = Field(default=300.0, description="Seconds before a preview subprocess is killed")
    simulation_mode: bool = Field(default=False, description="Skip the Pulumi CLI and always use the static parser")
    pulumi_passphrase: str = Field(default="", description="Passphrase for the local Pulumi secrets provider")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            model_name=os.getenv("INFRAVIZ_MODEL", "gemini-2.5-pro"),
            workspace_root=os.getenv("INFRAVIZ_WORKSPACE_ROOT", "/tmp"),
            pulumi_bin=os.getenv("INFRAVIZ_PULUMI_BIN", "pulumi"),
            deploy_timeout=float(os.getenv("INFRAVIZ_DEPLOY_TIMEOUT", "900")),
            preview_timeout=float(os.getenv("INFRAVIZ_PREVIEW_TIMEOUT", "300")),
            simulation_mode=_env_flag("INFRAVIZ_SIMULATION_MODE"),
            pulumi_passphrase=os.getenv("PULUMI_CONFIG_PASSPHRASE", ""),
        )

    def work_dir_for(self, stack_id: str) -> str:
        return os.path.join(self.workspace_root, f"infra-{stack_id}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
