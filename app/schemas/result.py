from pydantic import BaseModel
from typing import Any, Dict, Optional


class OperationResultOut(BaseModel):
    ok: bool
    message: str
    error: Optional[str] = None    # not_found | conflict | validation_failed | store_failure
    data: Dict[str, Any] = {}
