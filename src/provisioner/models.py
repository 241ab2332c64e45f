"""
Data models returned by the provisioner.
"""

from pydantic import BaseModel, ConfigDict, Field


class Credentials(BaseModel):
    """Connection details for a binding's login role.

    Returned once, when the binding is created. The password is never stored by
    the provisioner, so the caller must persist it if it needs it again.
    """

    model_config = ConfigDict(frozen=True)

    dbname: str = Field(..., description="Tenant database name")
    username: str = Field(..., description="Login role name")
    password: str = Field(..., repr=False, description="Generated password, shown only once")
    host: str = Field(..., description="Engine host from the admin source URL")
    port: str = Field(..., description="Engine port, as a string")
    url: str = Field(..., repr=False, description="postgresql:// URL embedding the credentials")
