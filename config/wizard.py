import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

load_dotenv()


class WizardConfig(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    encryption_key: Optional[str] = None
    thread_prefix: str = "signup"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "WizardConfig":
        return cls(
            encryption_key=os.environ.get("WIZARD_ENCRYPTION_KEY") or None,
            thread_prefix=os.environ.get("WIZARD_THREAD_PREFIX", "signup"),
            log_level=os.environ.get("WIZARD_LOG_LEVEL", "INFO").upper(),
        )
