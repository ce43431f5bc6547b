from pydantic import BaseModel

class PortalSessionOut(BaseModel):
    url: str
