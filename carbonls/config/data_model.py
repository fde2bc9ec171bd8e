from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


class CarbonLsConfigModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


class DefaultSettingsConfig(CarbonLsConfigModel):
    max_number_of_problems: int = Field(default=1000, ge=0)
    """
    Maximum number of problems reported per document when the client does not provide its own settings.
    """


class DiagnosticsConfig(CarbonLsConfigModel):
    enabled: bool = True
    """
    Report problems found in open documents. Empty diagnostics are still published when disabled.
    """
    source: str = "ex"
    """
    Source attached to every reported diagnostic.
    """


class LspConfig(CarbonLsConfigModel):
    configuration_section: str = "languageServerExample"
    """
    Section requested from the client with `workspace/configuration`.
    """
    configuration_timeout: Optional[float] = Field(default=None, gt=0)
    """
    Maximum time in seconds a validation waits for document settings from the client.
    Leave unset to wait without a limit.
    """
    default_settings: DefaultSettingsConfig = Field(
        default_factory=DefaultSettingsConfig
    )
    """
    Settings used when the client settings are not available.
    """
    diagnostics: DiagnosticsConfig = Field(default_factory=DiagnosticsConfig)
    """
    Diagnostics config options.
    """


class TopLevelConfig(CarbonLsConfigModel):
    subconfigs: List[Annotated[Path, BeforeValidator(lambda p: Path(p).resolve())]] = []
    lsp: LspConfig = Field(default_factory=LspConfig)
