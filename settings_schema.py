from pydantic import BaseModel, Field, ValidationError

class SettingsSchema(BaseModel):
    log_level: str = "INFO"
    rpe_scale: int = Field(10, ge=1)
    default_rest_seconds: int = Field(0, ge=0)
    quick_complete_populate_actuals: bool = True
    gateway_key: str | int | bool = ""

def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
