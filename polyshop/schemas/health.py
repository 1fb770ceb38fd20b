from __future__ import annotations

from pydantic import BaseModel


class ProbeRead(BaseModel):
    status: str
    service: str
