from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class MongoModel(BaseModel):
    # Enum fields are kept as their string values so records stay plain for the store
    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True, use_enum_values=True)

    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id", "created_at", "updated_at"})
