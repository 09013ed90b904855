from typing import Literal

from pydantic import BaseModel

ValType = Literal["string", "number", "bool", "list"]


class EnvConfig(BaseModel):
    """One client-scoped setting, read as "{CLIENT_TYPE}_{ENGINE}_{env_key}".

    Attributes:
        env_key:  Key suffix, e.g. "API_KEY".
        val_type: How HelperConfig parses the raw value.
        default:  Value used when the variable is unset. None makes the setting required.
        secret:   Masked when the resolved configuration is logged.
    """

    env_key: str
    val_type: ValType = "string"
    default: str | int | float | bool | list | None = None
    secret: bool = False
