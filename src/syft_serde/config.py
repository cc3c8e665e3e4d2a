import pydantic_settings
from pydantic import SecretStr


class SerdeSettings(pydantic_settings.BaseSettings):
    model_config = pydantic_settings.SettingsConfigDict(env_prefix="SYFT_SERDE_")

    default_format: str = "json"
    org_master_key: SecretStr | None = None
    validate_output: bool = True
    json_indent: int | None = None
