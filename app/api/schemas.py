from pydantic import BaseModel, ConfigDict
from typing import Optional, Literal, Any

class HoldingRequest(BaseModel):
    symbol: Optional[str] = None
    amount: Optional[Any] = None
    purchasePrice: Optional[Any] = None
    note: str = ""

class TotalCostRequest(BaseModel):
    totalCost: Optional[Any] = None

class SnapshotRequest(BaseModel):
    description: Optional[str] = None

class HistoryModeRequest(BaseModel):
    mode: Literal['snapshot', 'realtime']

class LoginRequest(BaseModel):
    password: str = ""

class TagRequest(BaseModel):
    tag: Any = None

class ProjectRequest(BaseModel):
    model_config = ConfigDict(extra="allow")
    name: Optional[str] = None
    invested: Optional[Any] = None

class MigrateRequest(BaseModel):
    portfolio: Optional[list] = None
    transactions: Optional[list] = None
    projects: Optional[dict] = None
    snapshots: Optional[list] = None
